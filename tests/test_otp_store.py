import asyncio
import pytest

from utils.otp_store import OtpStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return OtpStore(ttl_seconds=300, sweep_interval_seconds=60, clock=clock)


class TestOtpStore:

    def test_generated_codes_are_six_digits(self):
        for _ in range(50):
            code = OtpStore.generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert not code.startswith("0")

    def test_valid_code_is_consumed(self, store):
        store.issue("5321234567", "123456")

        assert store.verify("5321234567", "123456") is True
        assert store.verify("5321234567", "123456") is False
        assert len(store) == 0

    def test_wrong_code_keeps_entry(self, store):
        store.issue("5321234567", "123456")

        assert store.verify("5321234567", "654321") is False
        assert store.verify("5321234567", "123456") is True

    def test_unknown_key(self, store):
        assert store.verify("5000000000", "123456") is False

    def test_reissue_replaces_previous_code(self, store):
        store.issue("5321234567", "111111")
        store.issue("5321234567", "222222")

        assert store.verify("5321234567", "111111") is False
        assert store.verify("5321234567", "222222") is True

    def test_expired_code_is_rejected_and_dropped(self, store, clock):
        store.issue("5321234567", "123456")
        clock.advance(301)

        assert store.verify("5321234567", "123456") is False
        assert len(store) == 0

    def test_code_valid_until_ttl(self, store, clock):
        store.issue("5321234567", "123456")
        clock.advance(300)

        assert store.verify("5321234567", "123456") is True

    def test_sweep_removes_only_expired(self, store, clock):
        store.issue("old", "111111")
        clock.advance(200)
        store.issue("new", "222222")
        clock.advance(150)

        assert store.sweep() == 1
        assert len(store) == 1
        assert store.verify("new", "222222") is True

    @pytest.mark.asyncio
    async def test_start_and_stop_sweep_task(self, store):
        store.start()
        task = store._sweep_task
        assert task is not None and not task.done()

        await store.stop()
        assert task.cancelled()
        assert store._sweep_task is None

    @pytest.mark.asyncio
    async def test_background_sweep_runs(self, clock):
        store = OtpStore(ttl_seconds=1, sweep_interval_seconds=0.01, clock=clock)
        store.issue("5321234567", "123456")
        clock.advance(5)

        store.start()
        await asyncio.sleep(0.05)
        await store.stop()

        assert len(store) == 0
