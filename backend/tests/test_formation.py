import random

import pytest

from groupvote.models import Group, GroupStatus, Round
from groupvote.services.games.errors import InvariantViolation, ValidationError
from groupvote.services.games.formation import GroupPlan, check_partition, plan_groups


def _members(result):
    return [pid for plan in result.plans for pid in plan.member_ids]


def test_random_groups_partition_the_eligible_set(flask_app):
    result = plan_groups(range(1, 8), 3, rng=random.Random(3))
    assert [len(p.member_ids) for p in result.plans] == [3, 3, 1]
    assert sorted(_members(result)) == list(range(1, 8))
    assert [p.group_number for p in result.plans] == [1, 2, 3]
    assert result.plans[-1].auto_advance
    assert result.excluded == []


def test_random_groups_are_reproducible_with_a_seed(flask_app):
    first = plan_groups([5, 9, 2, 7, 1, 4], 2, rng=random.Random(11))
    second = plan_groups([1, 2, 4, 5, 7, 9], 2, rng=random.Random(11))
    assert [p.member_ids for p in first.plans] == [p.member_ids for p in second.plans]


@pytest.mark.parametrize('size', [0, 11, 'three'])
def test_group_size_out_of_range(flask_app, size):
    with pytest.raises(ValidationError):
        plan_groups([1, 2, 3], size)


def test_group_size_at_maximum(flask_app):
    result = plan_groups(range(1, 11), 10)
    assert len(result.plans) == 1


def test_custom_assignment_is_kept_as_given(flask_app):
    result = plan_groups([1, 2, 3, 4, 5], 3, custom_assignment=[[4, 1], [2, 3, 5]])
    assert [p.member_ids for p in result.plans] == [[4, 1], [2, 3, 5]]


def test_custom_assignment_rejects_ineligible_participant(flask_app):
    with pytest.raises(ValidationError) as exc:
        plan_groups([1, 2, 3], 3, custom_assignment=[[1, 2, 99]])
    assert 'Participant 99 is not eligible' in exc.value.message


def test_custom_assignment_rejects_participant_in_two_groups(flask_app):
    with pytest.raises(ValidationError) as exc:
        plan_groups([1, 2, 3], 3, custom_assignment=[[1, 2], [2, 3]])
    assert 'Participant 2 appears in multiple groups' in exc.value.message


def test_custom_assignment_rejects_empty_group(flask_app):
    with pytest.raises(ValidationError):
        plan_groups([1, 2], 3, custom_assignment=[[1, 2], []])


def test_custom_assignment_must_cover_everyone(flask_app):
    with pytest.raises(ValidationError) as exc:
        plan_groups([1, 2, 3, 4], 3, custom_assignment=[[1, 2], [3]])
    assert 'Participant 4 is not assigned' in exc.value.message


def test_partial_custom_assignment_reports_excluded(flask_app):
    result = plan_groups([1, 2, 3, 4], 3, custom_assignment=[[1, 2], [3]],
                         require_full_coverage=False)
    assert result.excluded == [4]


def test_hidden_role_picks_a_member_of_each_voting_group(flask_app):
    result = plan_groups(range(1, 8), 3, hidden_role=True, rng=random.Random(5))
    for plan in result.plans:
        if plan.auto_advance:
            assert plan.role_holder_id is None
        else:
            assert plan.role_holder_id in plan.member_ids


def test_hidden_role_custom_override_must_be_a_member(flask_app):
    with pytest.raises(ValidationError):
        plan_groups([1, 2, 3, 4], 2, custom_assignment=[[1, 2], [3, 4]],
                    role_holders={1: 3}, hidden_role=True)


def test_hidden_role_custom_override_is_used(flask_app):
    result = plan_groups([1, 2, 3, 4], 2, custom_assignment=[[1, 2], [3, 4]],
                         role_holders={1: 2, 2: 3}, hidden_role=True)
    assert [p.role_holder_id for p in result.plans] == [2, 3]


def test_plain_variant_has_no_role_holders(flask_app):
    result = plan_groups([1, 2, 3, 4], 2, role_holders={1: 1})
    assert all(p.role_holder_id is None for p in result.plans)


def test_check_partition_detects_overlap():
    plans = [GroupPlan(1, [1, 2]), GroupPlan(2, [2, 3])]
    with pytest.raises(InvariantViolation):
        check_partition(plans, {1, 2, 3})


def test_check_partition_detects_missing_participant():
    with pytest.raises(InvariantViolation):
        check_partition([GroupPlan(1, [1, 2])], {1, 2, 3})


def test_single_member_group_is_persisted_as_completed(started_game):
    game_id, ids, outcome = started_game(players=7, group_size=3)
    rnd = Round.query.filter_by(game_id=game_id, round_number=1).one()
    groups = Group.query.filter_by(round_id=rnd.id).order_by(Group.group_number).all()
    assert [len(g.members) for g in groups] == [3, 3, 1]
    solo = groups[-1]
    assert solo.status == GroupStatus.COMPLETED
    assert solo.winner_id == solo.members[0]
    assert [g['auto_advanced'] for g in outcome.groups] == [False, False, True]
