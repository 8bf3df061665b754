"""
Tests for CohortService: creation, the intake lifecycle, duplication and
statistics.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from hub_kernel.exceptions import CohortNotAcceptingError, CohortNotFoundError, InvalidTransitionError
from hub_modules.incubation import CohortStatus


class TestCreateCohort:

    def test_defaults(self, cohort_service, test_actor_id):
        cohort = cohort_service.create_cohort(
            "Fintech Fall 2025", test_actor_id, eligibility_criteria=["Pre-seed"],
        )
        assert cohort.status == CohortStatus.DRAFT.value
        assert cohort.capacity == 10
        assert cohort.accepted_count == 0
        assert cohort.slug.startswith("fintech-fall-2025-")
        assert cohort.eligibility_criteria == ["Pre-seed"]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"capacity": 0},
            {"start_date_offset": 10, "end_date_offset": 5},
            {"application_start_offset": 3, "application_end_offset": 1},
        ],
    )
    def test_invalid_definitions(self, cohort_service, deterministic_clock, test_actor_id, kwargs):
        now = deterministic_clock.now_utc()
        options = {}
        for key, value in kwargs.items():
            if key.endswith("_offset"):
                options[key.removesuffix("_offset")] = now + timedelta(days=value)
            else:
                options[key] = value
        with pytest.raises(ValueError):
            cohort_service.create_cohort("Broken", test_actor_id, **options)

    def test_unknown_cohort(self, cohort_service):
        with pytest.raises(CohortNotFoundError):
            cohort_service.get(uuid4())


class TestLifecycle:

    def test_full_intake(self, cohort_service, make_cohort, dispatcher, test_actor_id):
        cohort = make_cohort()
        cohort_service.close_applications(cohort.id, test_actor_id)
        cohort_service.activate(cohort.id, test_actor_id)
        cohort_service.complete(cohort.id, test_actor_id)
        cohort_service.archive(cohort.id, test_actor_id)

        assert cohort.status == CohortStatus.ARCHIVED.value
        names = dispatcher.published_names()
        for expected in ("CohortOpened", "CohortApplicationsClosed", "CohortActivated", "CohortCompleted"):
            assert expected in names

        with pytest.raises(InvalidTransitionError):
            cohort_service.open_for_applications(cohort.id, test_actor_id)

    def test_reopen_applications(self, cohort_service, make_cohort, make_application, test_actor_id):
        cohort = make_cohort()
        cohort_service.close_applications(cohort.id, test_actor_id)
        with pytest.raises(CohortNotAcceptingError):
            make_application(cohort)

        cohort_service.open_for_applications(cohort.id, test_actor_id)
        assert make_application(cohort).cohort_id == cohort.id

    def test_draft_cannot_start(self, cohort_service, make_cohort, test_actor_id):
        cohort = make_cohort(open_intake=False)
        with pytest.raises(InvalidTransitionError):
            cohort_service.activate(cohort.id, test_actor_id)
        assert cohort_service.get(cohort.id).status == CohortStatus.DRAFT.value


class TestDuplicate:

    def test_carries_settings_into_a_new_draft(self, cohort_service, make_cohort, test_actor_id):
        source = make_cohort(
            "Agritech 2025", capacity=8, description="Farm to market",
            benefits=["Office space", "Cloud credits"],
        )
        copy = cohort_service.duplicate(source.id, "Agritech 2026", test_actor_id)

        assert copy.id != source.id
        assert copy.status == CohortStatus.DRAFT.value
        assert copy.capacity == 8
        assert copy.description == "Farm to market"
        assert copy.benefits == ["Office space", "Cloud credits"]
        assert copy.accepted_count == 0

    def test_overrides(self, cohort_service, make_cohort, test_actor_id):
        source = make_cohort(capacity=8)
        assert cohort_service.duplicate(source.id, "Smaller", test_actor_id, capacity=4).capacity == 4


class TestStatistics:

    def test_counts_by_status(
        self, cohort_service, application_service, make_cohort, make_application, interviewed, test_actor_id,
    ):
        cohort = make_cohort(capacity=2)
        accepted = interviewed(make_application(cohort, "Winner"))
        application_service.accept(accepted.id, test_actor_id)
        rejected = make_application(cohort, "Not Yet")
        application_service.reject(rejected.id, test_actor_id, "Too early")
        make_application(cohort, "Waiting")

        stats = cohort_service.statistics(cohort.id)

        assert stats.total_applications == 3
        assert stats.by_status["accepted"] == 1
        assert stats.by_status["rejected"] == 1
        assert stats.by_status["submitted"] == 1
        assert stats.by_status["screening"] == 0
        assert stats.accepted == 1
        assert stats.available_spots == 1
        assert stats.acceptance_rate == 33.3

    def test_empty_cohort(self, cohort_service, make_cohort):
        stats = cohort_service.statistics(make_cohort().id)
        assert stats.total_applications == 0
        assert stats.acceptance_rate == 0.0
