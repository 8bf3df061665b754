"""
Tests for the application pipeline: submission, the named steps, cohort
capacity on acceptance, scoring and onboarding.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from hub_kernel.exceptions import (
    ApplicationNotFoundError,
    CohortCapacityError,
    CohortNotAcceptingError,
    CohortNotFoundError,
    InvalidTransitionError,
    OnboardingError,
)
from hub_kernel.selectors.status_history_selector import StatusHistorySelector
from hub_modules.incubation import ApplicationData, ApplicationStatus, StartupStage


class TestSubmission:

    def test_submit(self, session, make_cohort, make_application, dispatcher):
        cohort = make_cohort()
        application = make_application(cohort, stage=StartupStage.MVP, founders=({"name": "Ife"},))

        assert application.status == ApplicationStatus.SUBMITTED.value
        assert application.code == "APP-2025-0001"
        assert application.stage == "mvp"
        assert application.founders_data == [{"name": "Ife"}]
        entries = StatusHistorySelector(session).entries_for("application", application.id)
        assert [(e.from_status, e.to_status) for e in entries] == [(None, "submitted")]
        assert "ApplicationSubmitted" in dispatcher.published_names()

    def test_codes_are_sequential(self, make_cohort, make_application):
        cohort = make_cohort(capacity=5)
        codes = [make_application(cohort, f"Startup {n}").code for n in range(3)]
        assert codes == ["APP-2025-0001", "APP-2025-0002", "APP-2025-0003"]

    def test_codes_continue_past_four_digits(self, session, make_cohort, make_application):
        cohort = make_cohort(capacity=5)
        first = make_application(cohort, "Startup A")
        first.code = "APP-2025-9999"
        session.commit()

        assert make_application(cohort, "Startup B").code == "APP-2025-10000"
        assert make_application(cohort, "Startup C").code == "APP-2025-10001"

    def test_draft_cohort_refuses(self, make_cohort, make_application):
        cohort = make_cohort(open_intake=False)
        with pytest.raises(CohortNotAcceptingError):
            make_application(cohort)

    def test_deadline_passed(self, make_cohort, make_application, deterministic_clock):
        cohort = make_cohort(application_end=deterministic_clock.now_utc() + timedelta(days=1))
        make_application(cohort, "On Time")
        deterministic_clock.advance(2 * 24 * 3600)
        with pytest.raises(CohortNotAcceptingError):
            make_application(cohort, "Too Late")

    def test_unknown_cohort(self, application_service, test_actor_id):
        with pytest.raises(CohortNotFoundError):
            application_service.submit(
                uuid4(), ApplicationData(startup_name="Ghost", email="a@b.io"), test_actor_id,
            )

    @pytest.mark.parametrize("name, email", [("  ", "a@b.io"), ("Acme", "not-an-email")])
    def test_data_validation(self, name, email):
        with pytest.raises(ValueError):
            ApplicationData(startup_name=name, email=email)


class TestPipeline:

    def test_cannot_skip_to_accepted(self, application_service, make_cohort, make_application, test_actor_id):
        cohort = make_cohort()
        application = make_application(cohort)

        with pytest.raises(InvalidTransitionError):
            application_service.accept(application.id, test_actor_id)

        application = application_service.get(application.id)
        assert application.status == ApplicationStatus.SUBMITTED.value
        assert application.decision_at is None
        assert cohort.accepted_count == 0

    def test_full_path_to_acceptance(
        self, session, application_service, make_cohort, make_application, interviewed, test_actor_id,
    ):
        cohort = make_cohort()
        application = interviewed(make_application(cohort))
        assert application.interview_location == "Online"
        assert application.interview_notes == "Strong team"

        accepted = application_service.accept(application.id, test_actor_id, "Welcome aboard")

        assert accepted.status == ApplicationStatus.ACCEPTED.value
        assert accepted.decided_by_id == test_actor_id
        assert accepted.decision_at is not None
        assert cohort.accepted_count == 1

        entries = StatusHistorySelector(session).entries_for("application", application.id)
        assert [e.to_status for e in entries] == [
            "submitted", "screening", "interview_scheduled", "interviewed", "accepted",
        ]
        assert entries[2].notes == "Interview scheduled for Mar 5, 2025 09:00"

    def test_interview_can_send_back_to_screening(
        self, application_service, make_cohort, make_application, interviewed, test_actor_id,
    ):
        application = interviewed(make_application(make_cohort()))
        application_service.transition(application.id, ApplicationStatus.SCREENING, test_actor_id)
        assert application_service.get(application.id).status == ApplicationStatus.SCREENING.value

    def test_reject_records_reason(self, application_service, make_cohort, make_application, dispatcher, test_actor_id):
        application = make_application(make_cohort())
        rejected = application_service.reject(application.id, test_actor_id, "Too early")

        assert rejected.status == ApplicationStatus.REJECTED.value
        assert rejected.rejection_reason == "Too early"
        event = next(e for e in dispatcher.published if e.name == "ApplicationRejected")
        assert event.payload["reason"] == "Too early"

    @pytest.mark.parametrize("finish", ["reject", "withdraw"])
    def test_closed_applications_stay_closed(
        self, application_service, make_cohort, make_application, test_actor_id, deterministic_clock, finish,
    ):
        application = make_application(make_cohort())
        getattr(application_service, finish)(application.id, test_actor_id)

        with pytest.raises(InvalidTransitionError):
            application_service.start_screening(application.id, test_actor_id)
        with pytest.raises(InvalidTransitionError):
            application_service.schedule_interview(
                application.id, deterministic_clock.now_utc(), test_actor_id,
            )
        assert application_service.get(application.id).interview_scheduled_at is None

    def test_unknown_application(self, application_service, test_actor_id):
        with pytest.raises(ApplicationNotFoundError):
            application_service.start_screening(uuid4(), test_actor_id)


class TestCohortCapacity:

    def test_full_cohort_rejects_before_mutation(
        self, session, application_service, make_cohort, make_application, interviewed, test_actor_id,
    ):
        cohort = make_cohort(capacity=1)
        first = interviewed(make_application(cohort, "First In"))
        second = interviewed(make_application(cohort, "Second In"))
        application_service.accept(first.id, test_actor_id)
        history_before = StatusHistorySelector(session).count_for("application", second.id)

        with pytest.raises(CohortCapacityError) as exc_info:
            application_service.accept(second.id, test_actor_id)

        assert exc_info.value.capacity == 1
        second = application_service.get(second.id)
        assert second.status == ApplicationStatus.INTERVIEWED.value
        assert second.decision_at is None
        assert cohort.accepted_count == 1
        assert StatusHistorySelector(session).count_for("application", second.id) == history_before

    def test_transition_to_accepted_also_checks_capacity(
        self, application_service, make_cohort, make_application, interviewed, test_actor_id,
    ):
        cohort = make_cohort(capacity=1)
        first = interviewed(make_application(cohort, "First In"))
        second = interviewed(make_application(cohort, "Second In"))
        application_service.transition(first.id, ApplicationStatus.ACCEPTED, test_actor_id)
        with pytest.raises(CohortCapacityError):
            application_service.transition(second.id, ApplicationStatus.ACCEPTED, test_actor_id)


class TestScoring:

    def test_mean_times_scale(self, application_service, make_cohort, make_application, test_actor_id):
        application = make_application(make_cohort())
        score = application_service.update_score(
            application.id, {"team": 8, "market": 7, "traction": Decimal("6.5")}, test_actor_id,
        )
        assert score == Decimal("71.67")
        assert application.evaluation_scores == {"team": "8", "market": "7", "traction": "6.5"}

    def test_no_scores(self, application_service, make_cohort, make_application, test_actor_id):
        application = make_application(make_cohort())
        assert application_service.update_score(application.id, {}, test_actor_id) is None

    def test_negative_rejected(self, application_service, make_cohort, make_application, test_actor_id):
        application = make_application(make_cohort())
        with pytest.raises(ValueError):
            application_service.update_score(application.id, {"team": -1}, test_actor_id)


class TestOnboarding:

    def test_onboard_once(
        self, application_service, make_cohort, make_application, interviewed, dispatcher, test_actor_id,
    ):
        application = interviewed(make_application(make_cohort()))
        application_service.accept(application.id, test_actor_id)
        member_id = uuid4()

        onboarded = application_service.onboard(application.id, test_actor_id, member_id)

        assert onboarded.onboarded_member_id == member_id
        assert onboarded.onboarded_at is not None
        assert "ApplicationOnboarded" in dispatcher.published_names()
        with pytest.raises(OnboardingError):
            application_service.onboard(application.id, test_actor_id)

    def test_only_accepted(self, application_service, make_cohort, make_application, test_actor_id):
        application = make_application(make_cohort())
        with pytest.raises(OnboardingError):
            application_service.onboard(application.id, test_actor_id)
