"""
AuthController unit tests.

Registration, sign-in/out, verification reconciliation, password reset,
profile queries and guard outcomes against in-memory collaborators.
"""

from __future__ import annotations

import pytest

from sessionkeeper.exceptions import (
    CredentialFailure,
    NotificationFailure,
    PersistenceFailure,
)
from sessionkeeper.models.enums import AuthErrorCode, AuthPhase, Outcome
from sessionkeeper.models.profile import UserProfile
from sessionkeeper.services.auth_controller import (
    PASSWORD_RESET_NOTICE,
    VERIFICATION_SENT_NOTICE,
)

MARKER = "user_session_id"


def _ann(verified: bool = False) -> UserProfile:
    return UserProfile(id="u1", display_name="Ann", email="ann@x.com", verified=verified)


# --- Registration ---


@pytest.mark.asyncio
async def test_sign_up_saves_profile_and_sends_verification(controller, provider, notifier, profiles):
    result = await controller.sign_up("Ann", "ann@x.com", "pw1")

    state = controller.state
    assert result.success
    assert result.outcome == Outcome.COMPLETED
    assert result.user_id == "u1"
    assert state.current_profile is not None
    assert state.current_profile.id == "u1"
    assert state.current_profile.display_name == "Ann"
    assert state.current_profile.email == "ann@x.com"
    assert state.current_profile.verified is False
    assert state.current_profile.secret.get_secret_value() == "pw1"
    assert state.is_registered is True
    assert state.is_authenticated is False
    assert state.phase == AuthPhase.AUTHENTICATED
    assert profiles.save_calls == 1
    assert notifier.sends == 1
    assert state.last_error == VERIFICATION_SENT_NOTICE
    assert state.last_error_code is None


@pytest.mark.asyncio
async def test_sign_up_never_persists_secret(controller, profiles):
    await controller.sign_up("Ann", "ann@x.com", "pw1")

    assert "secret" not in profiles.records["u1"].to_record()


@pytest.mark.asyncio
async def test_sign_up_credential_failure_stops_flow(controller, provider, notifier, profiles):
    provider.create_error = CredentialFailure(
        "An account with this email already exists. Try signing in.",
        error_code=AuthErrorCode.EMAIL_ALREADY_EXISTS,
    )

    result = await controller.sign_up("Ann", "ann@x.com", "pw1")

    assert not result.success
    assert result.error_code == AuthErrorCode.EMAIL_ALREADY_EXISTS
    assert controller.state.is_registered is False
    assert controller.state.current_profile is None
    assert controller.state.phase == AuthPhase.SIGNED_OUT
    assert controller.state.last_error == result.error_message
    assert profiles.save_calls == 0
    assert notifier.sends == 0


@pytest.mark.asyncio
async def test_sign_up_save_failure_still_sends_verification(controller, notifier, profiles):
    profiles.save_error = PersistenceFailure("Your profile could not be saved. Please try again.")

    result = await controller.sign_up("Ann", "ann@x.com", "pw1")

    assert result.success
    assert result.outcome == Outcome.PARTIAL
    assert result.error_code == AuthErrorCode.PERSISTENCE_ERROR
    assert notifier.sends == 1
    assert controller.state.is_registered is True
    assert controller.state.phase == AuthPhase.SIGNED_OUT
    assert controller.state.last_error == "Your profile could not be saved. Please try again."


@pytest.mark.asyncio
async def test_sign_up_notification_failure_is_partial(controller, notifier):
    notifier.error = NotificationFailure("The verification email could not be sent.")

    result = await controller.sign_up("Ann", "ann@x.com", "pw1")

    assert result.outcome == Outcome.PARTIAL
    assert result.error_code == AuthErrorCode.NOTIFICATION_ERROR
    assert controller.state.phase == AuthPhase.AUTHENTICATED
    assert controller.state.last_error_code == AuthErrorCode.NOTIFICATION_ERROR


# --- Sign-in / sign-out ---


@pytest.mark.asyncio
async def test_sign_in_writes_marker_and_fetches_profile(controller, provider, profiles, session_store):
    provider.add_account("ann@x.com", "pw1", "u1")
    profiles.add(_ann())

    result = await controller.sign_in("ann@x.com", "pw1")

    state = controller.state
    assert result.success
    assert result.outcome == Outcome.COMPLETED
    assert state.is_authenticated is True
    assert state.phase == AuthPhase.AUTHENTICATED
    assert session_store.get(MARKER) == "u1"
    assert profiles.fetch_calls == 1
    # Provisional profile had no display name; the durable record replaced it.
    assert state.current_profile == _ann()
    assert state.raw_provider_identity is not None
    assert state.raw_provider_identity.id == "u1"


@pytest.mark.asyncio
async def test_sign_in_failure_writes_no_marker(controller, provider, session_store):
    provider.authenticate_error = CredentialFailure(
        "Incorrect email or password.", error_code=AuthErrorCode.INVALID_CREDENTIALS,
    )

    result = await controller.sign_in("ann@x.com", "wrong")

    assert not result.success
    assert result.outcome == Outcome.FAILED
    assert controller.state.is_authenticated is False
    assert controller.state.last_error == "Incorrect email or password."
    assert controller.state.last_error_code == AuthErrorCode.INVALID_CREDENTIALS
    assert controller.state.phase == AuthPhase.SIGNED_OUT
    assert MARKER not in session_store.values


@pytest.mark.asyncio
async def test_sign_in_missing_profile_keeps_provisional(controller, provider, session_store):
    provider.add_account("ann@x.com", "pw1", "u1")

    result = await controller.sign_in("ann@x.com", "pw1")

    assert result.success
    assert result.outcome == Outcome.PARTIAL
    assert result.error_code == AuthErrorCode.PROFILE_NOT_FOUND
    assert controller.state.is_authenticated is True
    assert controller.state.current_profile.id == "u1"
    assert controller.state.current_profile.display_name == ""
    assert session_store.get(MARKER) == "u1"


@pytest.mark.asyncio
async def test_sign_out_clears_session(controller, provider, profiles, session_store):
    provider.add_account("ann@x.com", "pw1", "u1")
    profiles.add(_ann())
    await controller.sign_in("ann@x.com", "pw1")

    result = await controller.sign_out()

    state = controller.state
    assert result.success
    assert state.is_authenticated is False
    assert state.is_registered is False
    assert state.current_profile is None
    assert state.raw_provider_identity is None
    assert state.phase == AuthPhase.SIGNED_OUT
    assert MARKER not in session_store.values


@pytest.mark.asyncio
async def test_sign_out_failure_changes_only_last_error(controller, provider, profiles, session_store):
    provider.add_account("ann@x.com", "pw1", "u1")
    profiles.add(_ann())
    await controller.sign_in("ann@x.com", "pw1")
    provider.deauthenticate_error = CredentialFailure(
        "Cannot reach the server.", error_code=AuthErrorCode.NETWORK_ERROR,
    )
    before = controller.state

    result = await controller.sign_out()

    after = controller.state
    assert not result.success
    assert after.is_authenticated is True
    assert after.current_profile == before.current_profile
    assert session_store.get(MARKER) == "u1"
    assert after.last_error == "Cannot reach the server."
    assert after.phase == before.phase
    assert after.raw_provider_identity == before.raw_provider_identity


# --- Verification ---


@pytest.mark.asyncio
async def test_send_verification_sets_notice(controller, notifier):
    result = await controller.send_verification()

    assert result.success
    assert notifier.sends == 1
    assert controller.state.last_error == VERIFICATION_SENT_NOTICE
    assert controller.state.last_error_code is None


@pytest.mark.asyncio
async def test_send_verification_failure_sets_message(controller, notifier):
    notifier.error = NotificationFailure("The verification email could not be sent.")

    result = await controller.send_verification()

    assert not result.success
    assert controller.state.last_error == "The verification email could not be sent."
    assert controller.state.phase == AuthPhase.SIGNED_OUT


@pytest.mark.asyncio
async def test_refresh_verification_is_idempotent(controller, provider, profiles):
    provider.add_account("ann@x.com", "pw1", "u1", verified=True)
    profiles.add(_ann(verified=False))
    await controller.sign_in("ann@x.com", "pw1")

    first = await controller.refresh_verification_status()
    second = await controller.refresh_verification_status()

    assert first.outcome == Outcome.COMPLETED
    assert second.outcome == Outcome.UNCHANGED
    assert profiles.update_calls == 1
    assert controller.state.current_profile.verified is True


@pytest.mark.asyncio
async def test_refresh_verification_skips_mismatched_identity(controller, provider, profiles):
    provider.add_account("ann@x.com", "pw1", "u1")
    other = provider.add_account("bob@x.com", "pw2", "u2", verified=True)
    profiles.add(_ann())
    await controller.sign_in("ann@x.com", "pw1")
    provider.current = other

    result = await controller.refresh_verification_status()

    assert result.outcome == Outcome.PRECONDITION_NOT_MET
    assert profiles.update_calls == 0
    assert controller.state.current_profile == _ann()


@pytest.mark.asyncio
async def test_refresh_verification_without_profile(controller, profiles):
    result = await controller.refresh_verification_status()

    assert result.outcome == Outcome.PRECONDITION_NOT_MET
    assert result.error_code == AuthErrorCode.PRECONDITION_NOT_MET
    assert controller.state.last_error is None
    assert profiles.update_calls == 0


# --- Profile persistence ---


@pytest.mark.asyncio
async def test_save_profile_without_profile_is_precondition(controller, profiles):
    result = await controller.save_profile()

    assert result.outcome == Outcome.PRECONDITION_NOT_MET
    assert profiles.save_calls == 0
    assert controller.state.last_error is None


@pytest.mark.asyncio
async def test_fetch_profile_without_identity_is_precondition(controller, profiles):
    result = await controller.fetch_profile()

    assert result.outcome == Outcome.PRECONDITION_NOT_MET
    assert profiles.fetch_calls == 0


@pytest.mark.asyncio
async def test_fetch_profile_failure_keeps_previous_profile(controller, provider, profiles):
    provider.add_account("ann@x.com", "pw1", "u1")
    profiles.add(_ann())
    await controller.sign_in("ann@x.com", "pw1")
    profiles.fetch_error = PersistenceFailure("The profile store is unreachable. Please try again later.")

    result = await controller.fetch_profile()

    assert not result.success
    assert controller.state.current_profile == _ann()
    assert controller.state.last_error_code == AuthErrorCode.PERSISTENCE_ERROR


# --- Password reset ---


@pytest.mark.asyncio
async def test_reset_password_success(controller, provider):
    result = await controller.reset_password("ann@x.com")

    assert result.success
    assert provider.reset_requests == ["ann@x.com"]
    assert controller.state.password_reset_requested is True
    assert controller.state.last_error == PASSWORD_RESET_NOTICE
    assert controller.state.last_error_code is None


@pytest.mark.asyncio
async def test_reset_password_failure(controller, provider):
    provider.reset_error = CredentialFailure(
        "Too many emails were requested. Please wait before trying again.",
        error_code=AuthErrorCode.RATE_LIMITED,
    )

    result = await controller.reset_password("ann@x.com")

    assert not result.success
    assert controller.state.password_reset_requested is False
    assert controller.state.last_error_code == AuthErrorCode.RATE_LIMITED


# --- Profile queries ---


@pytest.mark.asyncio
async def test_queries_write_only_their_own_slot(controller, provider, profiles):
    provider.add_account("ann@x.com", "pw1", "u1")
    profiles.add(_ann(verified=True))
    profiles.add(UserProfile(id="u2", display_name="Bob", email="bob@x.com"))
    await controller.sign_in("ann@x.com", "pw1")
    signed_in = controller.state

    await controller.fetch_by_verification(True)
    filtered = controller.state.filtered_profiles
    await controller.search("bob")

    state = controller.state
    assert [p.id for p in filtered] == ["u1"]
    assert state.filtered_profiles == filtered
    assert [p.id for p in state.search_results] == ["u2"]
    assert state.current_profile == signed_in.current_profile
    assert state.is_authenticated is True

    await controller.fetch_by_verification(False)
    assert [p.id for p in controller.state.filtered_profiles] == ["u2"]
    assert controller.state.search_results == state.search_results


@pytest.mark.asyncio
async def test_fetch_all_fills_filtered_profiles(controller, profiles):
    profiles.add(_ann())
    profiles.add(UserProfile(id="u2", display_name="Bob", email="bob@x.com"))

    result = await controller.fetch_all()

    assert result.success
    assert {p.id for p in controller.state.filtered_profiles} == {"u1", "u2"}
    assert controller.state.search_results == ()


@pytest.mark.asyncio
async def test_query_failure_leaves_slot_untouched(controller, profiles):
    profiles.add(_ann())
    await controller.search("ann")
    profiles.query_error = PersistenceFailure("The profile store is unreachable. Please try again later.")

    result = await controller.search("ann")

    assert not result.success
    assert [p.id for p in controller.state.search_results] == ["u1"]
    assert controller.state.last_error_code == AuthErrorCode.PERSISTENCE_ERROR


# --- Observation ---


@pytest.mark.asyncio
async def test_subscribers_see_every_transition(controller, provider, profiles):
    provider.add_account("ann@x.com", "pw1", "u1")
    profiles.add(_ann())
    phases = []
    unsubscribe = controller.subscribe(lambda state: phases.append(state.phase))

    await controller.sign_in("ann@x.com", "pw1")
    unsubscribe()
    await controller.sign_out()

    assert phases[0] == AuthPhase.AUTHENTICATING
    assert phases[-1] == AuthPhase.AUTHENTICATED
    assert AuthPhase.SIGNED_OUT not in phases
