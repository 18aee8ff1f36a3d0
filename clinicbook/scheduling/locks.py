"""Per-doctor and per-patient write serialization."""

from contextlib import contextmanager
from threading import Lock


def doctor_key(doctor_id: int) -> str:
    return f'doctor:{doctor_id}'


def patient_key(patient_id: int) -> str:
    return f'patient:{patient_id}'


class _Entry:
    __slots__ = ('lock', 'users')

    def __init__(self):
        self.lock = Lock()
        self.users = 0


class BookingLocks:
    """Registry of named locks, one per doctor or patient.

    Keys are always acquired in sorted order so two writers holding
    overlapping key sets cannot deadlock. One instance is shared by every
    request served by the same application. An entry lives only while some
    caller holds or waits for it.
    """

    def __init__(self):
        self._registry_lock = Lock()
        self._locks: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def _checkout(self, key: str) -> Lock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str):
        checked_out: list[str] = []
        acquired: list[Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)
