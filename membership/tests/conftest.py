from datetime import datetime, timezone

import pytest

from membership.db import Storage
from membership.entries import MembershipLedger
from membership.inquiries import InquiryService
from membership.reconciler import Reconciler
from membership.reference import ReferenceAllocator
from membership.referrals import ReferralLedger
from membership.winners import WinnerLifecycle
from membership.withdrawals import WithdrawalService
from notifications.dispatcher import Dispatcher

from .factories import FakeClock, RecordingTransport, sequence_rng


@pytest.fixture
def storage():
    storage = Storage("sqlite://")
    storage.create_all()
    yield storage
    storage.drop_all()
    storage.dispose()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(storage, transport):
    return Dispatcher(storage, transport=transport, background=False, brand="Lucky Kameti", contact="help@example.com")


@pytest.fixture
def reconciler(storage, dispatcher, clock):
    return Reconciler(storage, dispatcher, clock=clock)


@pytest.fixture
def ledger(storage, dispatcher):
    return MembershipLedger(storage, dispatcher)


@pytest.fixture
def referrals(storage):
    return ReferralLedger(storage)


@pytest.fixture
def winners(storage, clock):
    return WinnerLifecycle(storage, clock=clock)


@pytest.fixture
def withdrawals(storage, clock):
    return WithdrawalService(storage, clock=clock)


@pytest.fixture
def inquiries(storage, dispatcher, clock):
    return InquiryService(storage, dispatcher, clock=clock)


@pytest.fixture
def make_reconciler(storage, dispatcher, clock):
    def factory(*rng_values: int, max_attempts: int = 5) -> Reconciler:
        allocator = ReferenceAllocator(rng=sequence_rng(*rng_values), max_attempts=max_attempts)
        return Reconciler(storage, dispatcher, allocator=allocator, clock=clock)

    return factory
