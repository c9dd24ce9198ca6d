"""
End-to-end tests for the transfer state machine.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from trustport.config import Settings
from trustport.container import build_services
from trustport.domain import AttemptState, TransactionStatus
from trustport.errors import InvalidState
from trustport.notifier import MockSmsNotifier
from trustport.store.memory import MemoryLedgerStore

from conftest import balance_of, make_account, sent_code


class UnreachableLookupStore(MemoryLedgerStore):
    """Accounts can be read by id, but every lookup by identifier fails."""

    async def find_account(self, field, value):
        raise SQLAlchemyError("connection reset")


def wrong_code(code):
    return "000000" if code != "000000" else "111111"


class TestImmediateSettlement:
    async def test_small_wallet_transfer(self, services, store, alice, bob):
        """Scenario A: 300 out of 1000 settles without step-up"""
        result = await services.transfers.start(alice.id, "wallet_bob", "300", "wallet")

        assert result.success is True
        assert result.state == AttemptState.COMPLETED
        assert result.requires_pin is False
        assert result.requires_otp is False
        assert result.message == "Transaction completed successfully"
        assert result.transaction_id
        assert await balance_of(store, alice.id) == Decimal("700.00")
        assert await balance_of(store, bob.id) == Decimal("550.00")

        records = await store.records_for(alice.id)
        assert len(records) == 1
        assert records[0].id == result.transaction_id
        assert records[0].status == TransactionStatus.COMPLETED

    async def test_state_trail(self, services, alice, bob):
        result = await services.transfers.start(alice.id, "bob", 50, "qr")
        attempt = services.transfers.get_attempt(result.attempt_id)
        assert attempt.trail == [
            AttemptState.INITIATED,
            AttemptState.RESOLVING_RECIPIENT,
            AttemptState.CHECKING_AMOUNT,
            AttemptState.DETERMINING_STEP_UP,
            AttemptState.SETTLING,
        ]
        assert attempt.state == AttemptState.COMPLETED

    async def test_history_sees_settled_transfer(self, services, alice, bob):
        await services.transfers.start(alice.id, "bob", "20.50", "wallet")
        records = await services.history.list_for(bob.id)
        assert [r.amount for r in records] == [Decimal("20.50")]


class TestPinStepUp:
    async def test_pin_then_settle(self, services, store, bob):
        """Scenario B: 1500 out of 2000 needs a PIN"""
        sender = await store.add_account(make_account("dana", "2000.00"))

        result = await services.transfers.start(sender.id, "wallet_bob", "1500", "wallet")
        assert result.success is True
        assert result.requires_pin is True
        assert result.state == AttemptState.AWAITING_PIN
        assert await balance_of(store, sender.id) == Decimal("2000.00")

        result = await services.transfers.submit_pin(result.attempt_id, "1234")
        assert result.success is True
        assert result.state == AttemptState.COMPLETED
        assert await balance_of(store, sender.id) == Decimal("500.00")
        assert await balance_of(store, bob.id) == Decimal("1750.00")

    async def test_malformed_pin_fails_attempt(self, services, store, bob):
        sender = await store.add_account(make_account("dana", "2000.00"))
        started = await services.transfers.start(sender.id, "bob", "1500", "wallet")

        result = await services.transfers.submit_pin(started.attempt_id, "12")
        assert result.success is False
        assert result.state == AttemptState.FAILED
        assert result.error == "challenge_rejected"
        assert await balance_of(store, sender.id) == Decimal("2000.00")

        again = await services.transfers.submit_pin(started.attempt_id, "1234")
        assert again.success is False
        assert again.error == "invalid_state"


class TestOtpStepUp:
    async def test_wrong_code_fails_without_moving_money(self, services, store, notifier, carol, bob):
        """Scenario C: a wrong code ends the attempt"""
        result = await services.transfers.start(carol.id, "wallet_bob", "6000", "wallet", contact="9876543210")
        assert result.requires_otp is True
        assert result.state == AttemptState.AWAITING_OTP
        assert result.otp_delivery_status == "delivered"
        assert result.otp_expires_in == 300
        assert result.fallback_code is None

        code = sent_code(notifier)
        result = await services.transfers.submit_otp(result.attempt_id, wrong_code(code))
        assert result.success is False
        assert result.state == AttemptState.FAILED
        assert result.error == "challenge_rejected"
        assert await balance_of(store, carol.id) == Decimal("10000.00")
        assert await balance_of(store, bob.id) == Decimal("250.00")

    async def test_correct_code_settles(self, services, store, notifier, carol, bob, clock):
        """Scenario C: the right code inside the window completes"""
        result = await services.transfers.start(carol.id, "wallet_bob", "6000", "wallet", contact="9876543210")
        clock.advance(120)
        result = await services.transfers.submit_otp(result.attempt_id, sent_code(notifier))

        assert result.success is True
        assert result.state == AttemptState.COMPLETED
        assert await balance_of(store, carol.id) == Decimal("4000.00")
        assert await balance_of(store, bob.id) == Decimal("6250.00")

    async def test_sms_goes_to_sender_phone_by_default(self, services, store, notifier, bob):
        sender = await store.add_account(make_account("erin", "9000.00", phone_number="9000012345"))
        await services.transfers.start(sender.id, "bob", "5500", "wallet")
        destination, message = notifier.sent[-1]
        assert destination == "9000012345"
        assert "verification code" in message

    async def test_expired_code(self, services, store, notifier, carol, bob, clock):
        result = await services.transfers.start(carol.id, "bob", "6000", "wallet", contact="9876543210")
        clock.advance(301)
        result = await services.transfers.submit_otp(result.attempt_id, sent_code(notifier))

        assert result.success is False
        assert result.error == "challenge_expired"
        assert await balance_of(store, carol.id) == Decimal("10000.00")

    async def test_status_fails_expired_attempt(self, services, carol, bob, clock):
        started = await services.transfers.start(carol.id, "bob", "6000", "wallet", contact="9876543210")
        assert (await services.transfers.status(started.attempt_id)).state == AttemptState.AWAITING_OTP

        clock.advance(400)
        status = await services.transfers.status(started.attempt_id)
        assert status.state == AttemptState.FAILED
        assert status.error == "challenge_expired"

    async def test_resend_replaces_code(self, services, store, notifier, carol, bob, clock):
        started = await services.transfers.start(carol.id, "bob", "6000", "wallet", contact="9876543210")
        first = sent_code(notifier)

        clock.advance(60)
        resent = await services.transfers.resend_otp(started.attempt_id)
        assert resent.success is True
        assert resent.otp_expires_in == 300
        second = sent_code(notifier)
        assert len(notifier.sent) == 2

        attempt = services.transfers.get_attempt(started.attempt_id)
        assert attempt.challenge.code == second
        if first != second:
            result = await services.transfers.submit_otp(started.attempt_id, first)
            assert result.success is False
            assert await balance_of(store, carol.id) == Decimal("10000.00")
        else:
            result = await services.transfers.submit_otp(started.attempt_id, second)
            assert result.success is True

    async def test_resend_after_expiry_fails(self, services, carol, bob, clock):
        started = await services.transfers.start(carol.id, "bob", "6000", "wallet", contact="9876543210")
        clock.advance(301)
        result = await services.transfers.resend_otp(started.attempt_id)
        assert result.success is False
        assert result.error == "challenge_expired"

    async def test_delivery_failure_falls_back_to_screen(self, settings, store, clock, carol, bob):
        notifier = MockSmsNotifier(fail=True)
        services = build_services(settings, store, notifier=notifier, clock=clock)

        result = await services.transfers.start(carol.id, "bob", "6000", "wallet", contact="9876543210")
        assert result.success is True
        assert result.requires_otp is True
        assert result.otp_delivery_status == "failed"
        assert result.message == "SMS service unavailable - using demo mode"
        assert result.fallback_code and len(result.fallback_code) == 6

        result = await services.transfers.submit_otp(result.attempt_id, result.fallback_code)
        assert result.success is True
        assert await balance_of(store, carol.id) == Decimal("4000.00")

    async def test_otp_needs_a_destination(self, services, store, carol, bob):
        result = await services.transfers.start(carol.id, "bob", "6000", "wallet")
        assert result.success is False
        assert result.error == "contact_required"
        assert await balance_of(store, carol.id) == Decimal("10000.00")


class TestBankTransfers:
    async def test_unknown_account_number(self, services, store, notifier, alice):
        """Scenario D: nothing is issued for an unknown bank account"""
        result = await services.transfers.start(alice.id, "999999", "100", "bank", contact="9876543210")

        assert result.success is False
        assert result.state == AttemptState.FAILED
        assert result.error == "recipient_not_found"
        assert "account number" in result.message
        assert notifier.sent == []
        assert services.transfers.get_attempt(result.attempt_id).challenge is None
        assert await balance_of(store, alice.id) == Decimal("1000.00")

    async def test_small_bank_transfer_still_needs_otp(self, services, store, notifier, alice, bob):
        result = await services.transfers.start(alice.id, "ACC000123", "100", "bank", contact="9988776655")
        assert result.requires_otp is True
        assert notifier.sent[-1][0] == "9988776655"

        result = await services.transfers.submit_otp(result.attempt_id, sent_code(notifier))
        assert result.success is True
        records = await store.records_for(bob.id)
        assert records[0].description == "Bank transfer to bob"

    async def test_bank_requires_contact(self, services, alice, bob):
        result = await services.transfers.start(alice.id, "ACC000123", "100", "bank")
        assert result.success is False
        assert result.error == "contact_required"


class TestRejections:
    @pytest.mark.parametrize("amount", ["", "abc", "0", "-10", "10.001", None, "NaN"])
    async def test_invalid_amount(self, services, store, alice, bob, amount):
        result = await services.transfers.start(alice.id, "bob", amount, "wallet")
        assert result.success is False
        assert result.error == "invalid_amount"
        assert await balance_of(store, alice.id) == Decimal("1000.00")

    async def test_insufficient_funds(self, services, store, alice, bob):
        result = await services.transfers.start(alice.id, "bob", "1000.01", "wallet")
        assert result.success is False
        assert result.error == "insufficient_funds"
        assert result.message == "Insufficient funds"

    async def test_self_transfer(self, services, alice):
        result = await services.transfers.start(alice.id, "wallet_alice", "10", "wallet")
        assert result.success is False
        assert result.error == "self_transfer_not_allowed"

    async def test_unknown_sender(self, services, bob):
        result = await services.transfers.start("ghost", "bob", "10", "wallet")
        assert result.success is False
        assert result.error == "account_not_found"

    async def test_lookup_db_error_is_a_result(self, settings, notifier, clock):
        store = UnreachableLookupStore()
        sender = await store.add_account(make_account("dana", "2000.00"))
        services = build_services(settings, store, notifier=notifier, clock=clock)

        result = await services.transfers.start(sender.id, "bob", "10", "wallet")
        assert result.success is False
        assert result.state == AttemptState.FAILED
        assert result.error == "store_unavailable"
        assert await balance_of(store, sender.id) == Decimal("2000.00")

    async def test_unknown_channel(self, services, alice, bob):
        result = await services.transfers.start(alice.id, "bob", "10", "carrier-pigeon")
        assert result.success is False
        assert result.error == "invalid_channel"
        assert result.attempt_id is None


class TestAttemptLifecycle:
    async def test_cancel_awaiting_pin(self, services, store, bob):
        sender = await store.add_account(make_account("dana", "2000.00"))
        started = await services.transfers.start(sender.id, "bob", "1500", "wallet")

        result = await services.transfers.cancel(started.attempt_id)
        assert result.success is False
        assert result.state == AttemptState.FAILED
        assert result.error == "cancelled"

        status = await services.transfers.status(started.attempt_id)
        assert status.state == AttemptState.FAILED
        assert status.message == "Transfer cancelled"

    async def test_cancel_completed_attempt(self, services, alice, bob):
        done = await services.transfers.start(alice.id, "bob", "10", "wallet")
        result = await services.transfers.cancel(done.attempt_id)
        assert result.success is False
        assert result.error == "invalid_state"
        assert result.state == AttemptState.COMPLETED

    async def test_unknown_attempt(self, services):
        for call in (
            services.transfers.status("nope"),
            services.transfers.cancel("nope"),
            services.transfers.submit_pin("nope", "1234"),
            services.transfers.submit_otp("nope", "123456"),
            services.transfers.resend_otp("nope"),
        ):
            result = await call
            assert result.success is False
            assert result.error == "attempt_not_found"

    async def test_otp_submitted_to_pin_attempt(self, services, store, bob):
        sender = await store.add_account(make_account("dana", "2000.00"))
        started = await services.transfers.start(sender.id, "bob", "1500", "wallet")
        result = await services.transfers.submit_otp(started.attempt_id, "123456")
        assert result.error == "invalid_state"
        assert services.transfers.get_attempt(started.attempt_id).state == AttemptState.AWAITING_PIN

    async def test_terminal_attempt_cannot_transition(self, services, alice, bob):
        done = await services.transfers.start(alice.id, "bob", "10", "wallet")
        attempt = services.transfers.get_attempt(done.attempt_id)
        with pytest.raises(InvalidState):
            attempt.transition(AttemptState.SETTLING)

    async def test_finished_attempts_are_pruned(self, services, alice, bob, clock):
        done = await services.transfers.start(alice.id, "bob", "10", "wallet")
        clock.advance(2 * 3600)
        await services.transfers.start(alice.id, "bob", "10", "wallet")
        assert services.transfers.get_attempt(done.attempt_id) is None

    async def test_abandoned_attempts_are_failed_and_pruned(self, services, store, carol, bob, clock):
        sender = await store.add_account(make_account("dana", "2000.00"))
        pin_started = await services.transfers.start(sender.id, "bob", "1500", "wallet")
        otp_started = await services.transfers.start(carol.id, "bob", "6000", "wallet", contact="9876543210")
        pin_attempt = services.transfers.get_attempt(pin_started.attempt_id)
        otp_attempt = services.transfers.get_attempt(otp_started.attempt_id)

        clock.advance(10 * 3600)
        await services.transfers.start(sender.id, "bob", "10", "wallet")

        assert pin_attempt.state == AttemptState.FAILED
        assert pin_attempt.error.code == "attempt_expired"
        assert otp_attempt.state == AttemptState.FAILED
        assert otp_attempt.error.code == "challenge_expired"
        assert otp_attempt.challenge.consumed is True
        assert services.transfers.get_attempt(pin_started.attempt_id) is None
        assert services.transfers.get_attempt(otp_started.attempt_id) is None
        assert len(services.transfers._attempts) == 1
        assert await balance_of(store, sender.id) == Decimal("1990.00")
        assert await balance_of(store, carol.id) == Decimal("10000.00")

    async def test_expired_otp_attempt_is_failed_by_next_start(self, services, carol, bob, alice, clock):
        started = await services.transfers.start(carol.id, "bob", "6000", "wallet", contact="9876543210")
        clock.advance(301)
        await services.transfers.start(alice.id, "bob", "10", "wallet")

        attempt = services.transfers.get_attempt(started.attempt_id)
        assert attempt is not None
        assert attempt.state == AttemptState.FAILED
        status = await services.transfers.status(started.attempt_id)
        assert status.error == "challenge_expired"

    async def test_recent_pin_attempt_survives_pruning(self, services, store, alice, bob, clock):
        sender = await store.add_account(make_account("dana", "2000.00"))
        started = await services.transfers.start(sender.id, "bob", "1500", "wallet")
        clock.advance(30 * 60)
        await services.transfers.start(alice.id, "bob", "10", "wallet")

        assert services.transfers.get_attempt(started.attempt_id).state == AttemptState.AWAITING_PIN
        result = await services.transfers.submit_pin(started.attempt_id, "1234")
        assert result.success is True

    async def test_custom_thresholds_from_settings(self, store, notifier, clock, alice, bob):
        settings = Settings(pin_threshold=Decimal("10"), otp_threshold=Decimal("20"))
        services = build_services(settings, store, notifier=notifier, clock=clock)
        assert (await services.transfers.start(alice.id, "bob", "15", "wallet")).requires_pin is True
        assert (await services.transfers.start(alice.id, "bob", "25", "wallet")).requires_otp is True
