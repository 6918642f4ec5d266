import random
from collections import Counter

import pytest
from sqlalchemy import select

from rfi_api.core.config import get_settings
from rfi_api.exceptions import (
    AlreadyProcessed,
    AlreadyStakeholder,
    CrossClientViolation,
    DuplicatePending,
    Forbidden,
    NotFound,
    ServiceError,
)
from rfi_api.models import AccessRequest, Contact, ProjectStakeholder, RegistrationToken
from rfi_api.models.enums import AccessRequestStatus, RegistrationTokenType, StakeholderRole, UserRole
from rfi_api.services.access_requests import (
    find_project_by_reference,
    list_access_requests,
    process_access_request,
    submit_access_request,
    submit_public_access_request,
)
from rfi_api.services.principals import internal_principal
from rfi_api.services.registration import issue_registration_token
from rfi_api.services.stakeholders import add_stakeholder

PASSWORD = "StrongPassw0rd!"


def _tokens(db, contact_id):
    return db.execute(select(RegistrationToken).where(RegistrationToken.contact_id == contact_id)).scalars().all()


def _grants(db, contact_id):
    return db.execute(select(ProjectStakeholder).where(ProjectStakeholder.contact_id == contact_id)).scalars().all()


@pytest.fixture
def admin(make):
    return internal_principal(make.user("admin@rfi.example.com", role=UserRole.ADMIN))


def test_matching_domain_is_auto_approved_and_other_domain_pending(db_session, make):
    client = make.client()
    project = make.project(client)
    make.grant(project, make.contact(client, "alice@acme.com", password=PASSWORD))
    bob = make.contact(client, "bob@ACME.com")
    carol = make.contact(client, "carol@other.com")

    outcome = submit_access_request(db_session, contact_id=bob.id, project_id=project.id)

    assert outcome.auto_approved
    assert outcome.request.status == AccessRequestStatus.AUTO_APPROVED
    assert outcome.request.auto_approval_reason == "Email domain matches existing stakeholder (acme.com)"
    assert outcome.request.processed_at is not None
    assert outcome.grant.auto_approved is True
    assert outcome.grant.added_by_contact_id == bob.id
    assert outcome.grant.added_by_user_id is None
    assert outcome.grant.stakeholder_level == 1
    assert bob.registration_eligible is True
    tokens = _tokens(db_session, bob.id)
    assert len(tokens) == 1
    assert tokens[0].token_type == RegistrationTokenType.AUTO_APPROVED
    assert [effect.kind for effect in outcome.effects] == ["auto_approved"]
    assert outcome.effects[0].registration_url.endswith(f"/register?token={tokens[0].token}")

    pending = submit_access_request(db_session, contact_id=carol.id, project_id=project.id, justification="Need RFIs")
    assert pending.request.status == AccessRequestStatus.PENDING
    assert pending.grant is None
    assert pending.effects == []
    assert _grants(db_session, carol.id) == []


def test_auto_approval_for_registered_contact_sends_no_registration(db_session, make):
    client = make.client()
    project = make.project(client)
    make.grant(project, make.contact(client, "alice@acme.com", password=PASSWORD))
    bob = make.contact(client, "bob@acme.com", password=PASSWORD)

    outcome = submit_access_request(db_session, contact_id=bob.id, project_id=project.id)

    assert outcome.auto_approved
    assert outcome.effects == []
    assert _tokens(db_session, bob.id) == []
    assert bob.password_hash is not None


def test_blocked_domains_are_not_auto_approved(db_session, make, monkeypatch):
    monkeypatch.setenv("RFI_AUTO_APPROVAL_BLOCKED_DOMAINS", "Gmail.com")
    get_settings.cache_clear()
    client = make.client()
    project = make.project(client)
    make.grant(project, make.contact(client, "first@gmail.com", password=PASSWORD))
    second = make.contact(client, "second@gmail.com")

    outcome = submit_access_request(db_session, contact_id=second.id, project_id=project.id)
    assert outcome.request.status == AccessRequestStatus.PENDING


def test_submit_rejects_existing_grant_duplicate_pending_and_cross_client(db_session, make):
    acme = make.client("Acme")
    other = make.client("Other")
    project = make.project(acme)
    member = make.contact(acme, "member@acme.com", password=PASSWORD)
    make.grant(project, member)
    requester = make.contact(acme, "requester@elsewhere.com")
    outsider = make.contact(other, "outsider@other.com")

    with pytest.raises(AlreadyStakeholder):
        submit_access_request(db_session, contact_id=member.id, project_id=project.id)

    submit_access_request(db_session, contact_id=requester.id, project_id=project.id)
    with pytest.raises(DuplicatePending) as exc_info:
        submit_access_request(db_session, contact_id=requester.id, project_id=project.id)
    assert exc_info.value.status_code == 409

    with pytest.raises(CrossClientViolation):
        submit_access_request(db_session, contact_id=outsider.id, project_id=project.id)

    with pytest.raises(ServiceError):
        submit_access_request(
            db_session,
            contact_id=make.contact(acme, "third@elsewhere.com").id,
            project_id=project.id,
            requested_role="owner",
        )


def test_admin_approval_resets_contact_and_issues_single_token(db_session, make, admin):
    client = make.client()
    project = make.project(client)
    contact = make.contact(client, "x@partner.com", password="old-password", role=StakeholderRole.L1)
    stale = issue_registration_token(db_session, contact_id=contact.id, email=contact.email, project_ids=[])
    submitted = submit_access_request(
        db_session,
        contact_id=contact.id,
        project_id=project.id,
        requested_role=StakeholderRole.L2,
    )
    assert submitted.request.status == AccessRequestStatus.PENDING

    outcome = process_access_request(
        db_session,
        request_id=submitted.request.id,
        decision=AccessRequestStatus.APPROVED,
        acting=admin,
    )

    assert outcome.request.status == AccessRequestStatus.APPROVED
    assert outcome.request.processed_by_id == admin.id
    assert contact.role == StakeholderRole.L2
    assert contact.password_hash is None
    assert contact.email_verified is False
    assert contact.registration_eligible is True

    grants = _grants(db_session, contact.id)
    assert len(grants) == 1
    assert grants[0].stakeholder_level == 2
    assert grants[0].auto_approved is False
    assert grants[0].added_by_user_id == admin.id

    tokens = _tokens(db_session, contact.id)
    assert len(tokens) == 1
    assert tokens[0].token != stale.token
    assert tokens[0].project_ids == [str(project.id)]
    assert tokens[0].token_type == RegistrationTokenType.REQUESTED
    assert [effect.kind for effect in outcome.effects] == ["access_approved"]

    with pytest.raises(AlreadyProcessed):
        process_access_request(
            db_session,
            request_id=submitted.request.id,
            decision=AccessRequestStatus.REJECTED,
            acting=admin,
        )


def test_rejection_only_changes_request(db_session, make, admin):
    client = make.client()
    project = make.project(client)
    contact = make.contact(client, "y@partner.com", password=PASSWORD)
    original_hash = contact.password_hash
    submitted = submit_access_request(db_session, contact_id=contact.id, project_id=project.id)

    outcome = process_access_request(
        db_session,
        request_id=submitted.request.id,
        decision=AccessRequestStatus.REJECTED,
        acting=admin,
    )

    assert outcome.request.status == AccessRequestStatus.REJECTED
    assert outcome.request.processed_at is not None
    assert outcome.grant is None
    assert outcome.effects == []
    assert contact.password_hash == original_hash
    assert contact.role == StakeholderRole.L1
    assert _grants(db_session, contact.id) == []
    assert _tokens(db_session, contact.id) == []


def test_process_requires_admin_and_valid_decision(db_session, make, admin):
    client = make.client()
    project = make.project(client)
    contact = make.contact(client, "z@partner.com")
    submitted = submit_access_request(db_session, contact_id=contact.id, project_id=project.id)
    manager = internal_principal(make.user("pm@rfi.example.com", role=UserRole.MANAGER))

    with pytest.raises(Forbidden):
        process_access_request(db_session, request_id=submitted.request.id, decision="approved", acting=manager)
    with pytest.raises(ServiceError):
        process_access_request(db_session, request_id=submitted.request.id, decision="maybe", acting=admin)
    with pytest.raises(NotFound):
        process_access_request(db_session, request_id=client.id, decision="approved", acting=admin)
    assert submitted.request.status == AccessRequestStatus.PENDING


def test_approval_after_manual_add_keeps_existing_grant(db_session, make, admin):
    client = make.client()
    project = make.project(client)
    contact = make.contact(client, "late@partner.com")
    submitted = submit_access_request(
        db_session,
        contact_id=contact.id,
        project_id=project.id,
        requested_role=StakeholderRole.L2,
    )
    manual = add_stakeholder(db_session, project_id=project.id, contact_id=contact.id, actor=admin)

    outcome = process_access_request(
        db_session,
        request_id=submitted.request.id,
        decision=AccessRequestStatus.APPROVED,
        acting=admin,
    )

    grants = _grants(db_session, contact.id)
    assert [grant.id for grant in grants] == [manual.id]
    assert outcome.grant.id == manual.id
    assert grants[0].stakeholder_level == 1
    assert outcome.request.status == AccessRequestStatus.APPROVED
    assert len(_tokens(db_session, contact.id)) == 1


def test_concurrent_decisions_have_single_winner(file_session_factory, model_factory):
    with file_session_factory() as seed:
        make = model_factory(seed)
        admin = internal_principal(make.user("admin@rfi.example.com", role=UserRole.ADMIN))
        client = make.client()
        project = make.project(client)
        contact = make.contact(client, "race@partner.com")
        submitted = submit_access_request(seed, contact_id=contact.id, project_id=project.id)
        request_id = submitted.request.id
        contact_id = contact.id
        seed.commit()

    first = file_session_factory()
    second = file_session_factory()
    try:
        # first 持有尚未审批时读到的申请行。
        stale = first.get(AccessRequest, request_id)
        assert stale.status == AccessRequestStatus.PENDING

        process_access_request(second, request_id=request_id, decision=AccessRequestStatus.APPROVED, acting=admin)
        second.commit()

        with pytest.raises(AlreadyProcessed):
            process_access_request(first, request_id=request_id, decision=AccessRequestStatus.REJECTED, acting=admin)
    finally:
        first.rollback()
        first.close()
        second.close()

    with file_session_factory() as check:
        assert check.get(AccessRequest, request_id).status == AccessRequestStatus.APPROVED
        assert len(_grants(check, contact_id)) == 1
        assert len(_tokens(check, contact_id)) == 1


def test_interleaved_submissions_keep_at_most_one_pending(db_session, make, admin):
    rng = random.Random(20240611)
    client = make.client()
    projects = [make.project(client, f"Project {index}") for index in range(2)]
    contacts = [make.contact(client, f"user{index}@domain{index}.com") for index in range(3)]
    expected = (AlreadyStakeholder, DuplicatePending, AlreadyProcessed)

    for _ in range(60):
        if rng.random() < 0.6:
            try:
                submit_access_request(
                    db_session,
                    contact_id=rng.choice(contacts).id,
                    project_id=rng.choice(projects).id,
                )
            except expected:
                pass
        else:
            requests = db_session.execute(select(AccessRequest)).scalars().all()
            if not requests:
                continue
            try:
                process_access_request(
                    db_session,
                    request_id=rng.choice(requests).id,
                    decision=rng.choice([AccessRequestStatus.APPROVED, AccessRequestStatus.REJECTED]),
                    acting=admin,
                )
            except expected:
                pass

        pending = Counter(
            (row.contact_id, row.project_id)
            for row in db_session.execute(
                select(AccessRequest).where(AccessRequest.status == AccessRequestStatus.PENDING)
            ).scalars()
        )
        assert all(count == 1 for count in pending.values())


def test_public_request_creates_contact_in_project_client(db_session, make):
    client = make.client()
    project = make.project(client, "Harbor Tower", number="HT-2024")

    outcome = submit_public_access_request(
        db_session,
        name="  Dana Field ",
        email="Dana@Partner.com",
        project_reference="ht-2024",
        justification="Site superintendent for the east wing.",
    )

    assert outcome.request.status == AccessRequestStatus.PENDING
    assert outcome.request.project_id == project.id
    assert outcome.request.requested_role == StakeholderRole.L1
    contact = db_session.get(Contact, outcome.request.contact_id)
    assert contact.client_id == client.id
    assert contact.name == "Dana Field"
    assert contact.email == "dana@partner.com"
    assert contact.role == StakeholderRole.L1
    assert contact.registration_eligible is False
    assert contact.password_hash is None


def test_public_request_reuses_contact_and_rejects_duplicates(db_session, make):
    client = make.client()
    make.project(client, "Harbor Tower", number="HT-2024")

    submit_public_access_request(db_session, name="Dana", email="dana@partner.com", project_reference="HT-2024")
    with pytest.raises(DuplicatePending):
        submit_public_access_request(db_session, name="Dana", email="DANA@partner.com", project_reference="harbor")

    contacts = db_session.execute(select(Contact).where(Contact.email == "dana@partner.com")).scalars().all()
    assert len(contacts) == 1

    with pytest.raises(NotFound):
        submit_public_access_request(db_session, name="Dana", email="dana@partner.com", project_reference="nope")


def test_find_project_prefers_exact_number(db_session, make):
    client = make.client()
    exact = make.project(client, "Tower Renovation", number="TR-1")
    make.project(client, "TR-1 Annex", number="TR-10")

    assert find_project_by_reference(db_session, "tr-1").id == exact.id
    assert find_project_by_reference(db_session, "annex").project_number == "TR-10"
    assert find_project_by_reference(db_session, "   ") is None


def test_list_access_requests_puts_pending_first(db_session, make, admin):
    client = make.client()
    project = make.project(client)
    approved = make.contact(client, "a@one.com")
    waiting = make.contact(client, "b@two.com")
    first = submit_access_request(db_session, contact_id=approved.id, project_id=project.id)
    submit_access_request(db_session, contact_id=waiting.id, project_id=project.id)
    process_access_request(db_session, request_id=first.request.id, decision="approved", acting=admin)

    items = list_access_requests(db_session)
    assert [item.request.status for item in items] == ["pending", "approved"]
    assert items[0].contact.id == waiting.id
    assert items[0].currently_has_access is False
    assert items[1].currently_has_access is True
    assert items[1].project.id == project.id

    assert [item.request.status for item in list_access_requests(db_session, status="approved")] == ["approved"]
