from fast_migrate.models import APPLICATION, ASSIGNMENT, GROUP, USER
from fast_migrate.summary import CREATED, FAILED, SKIPPED, MigrationSummary


def sample(order):
    summary = MigrationSummary("okta")
    events = [
        (APPLICATION, CREATED, "0oa1", None),
        (APPLICATION, FAILED, "0oa2", "ValidationError: bad tile"),
        (GROUP, SKIPPED, "00g1", None),
        (USER, CREATED, "00u1", None),
        (ASSIGNMENT, FAILED, "0oa1/group/00g9", "DependencyFailed: group 00g9 failed to migrate"),
    ]
    for index in order:
        summary.record(*events[index])
    return summary


def test_render_is_fixed_and_order_independent():
    first = sample([0, 1, 2, 3, 4]).render()
    second = sample([4, 3, 2, 1, 0]).render()

    assert first == second
    assert first == (
        "Fast-migrate summary (okta)\n"
        "KIND            CREATED  SKIPPED  FAILED\n"
        "applications          1        0       1\n"
        "groups                0        1       0\n"
        "users                 1        0       0\n"
        "assignments           0        0       1\n"
        "total                 2        1       2\n"
        "\n"
        "Failures (2), fix and re-run to resume:\n"
        "  application 0oa2: ValidationError: bad tile\n"
        "  assignment 0oa1/group/00g9: DependencyFailed: group 00g9 failed to migrate\n"
    )


def test_exit_code_follows_failures():
    clean = MigrationSummary("onelogin")
    clean.record(APPLICATION, CREATED, "11")

    assert clean.exit_code == 0
    assert "Failures" not in clean.render()
    assert sample([1]).exit_code == 1


def test_to_dict_lists_sorted_failures():
    data = sample([4, 1]).to_dict()

    assert data["counts"][APPLICATION][FAILED] == 1
    assert [f["kind"] for f in data["failures"]] == [APPLICATION, ASSIGNMENT]
