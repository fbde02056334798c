import pytest

from careflow.errors import UnknownTest, ValidationError
from careflow.models.diagnosis import RequiredTestRecord
from careflow.models.report import ReportRecord
from careflow.schemas.diagnosis import NewRequiredTest, RequiredTestEdit
from careflow.services.required_tests import (
    all_gating_tests_satisfied,
    merge_doctor_edits,
    report_matches_test,
    unsatisfied_tests,
)


def _test(test_id, name, priority="medium", approved=False, source="ai-suggested", position=0):
    return RequiredTestRecord(
        id=test_id, name=name, reason=None, priority=priority, is_approved=approved, source=source, position=position
    )


def _report(name, report_type, reviewed=True):
    return ReportRecord(name=name, type=report_type, is_reviewed=reviewed)


@pytest.fixture()
def existing():
    return [
        _test("t1", "Complete Blood Count", priority="high", position=0),
        _test("t2", "Chest X-Ray", position=1),
        _test("t3", "Lipid Panel", approved=True, source="doctor-added", position=2),
    ]


@pytest.mark.parametrize(
    ("test_name", "report", "expected"),
    [
        ("Complete Blood Count", _report("March labs", "complete  blood count"), True),
        ("Blood Count", _report("CBC", "Complete Blood Count (CBC)"), True),
        ("Complete Blood Count (CBC)", _report("cbc", "Blood Count"), True),
        ("chest x-ray", _report("Radiology", "Chest X-Ray"), True),
        ("Lipid Panel", _report("March labs", "Complete Blood Count"), False),
        ("", _report("anything", "anything"), False),
        ("Lipid Panel", _report("", ""), False),
    ],
)
def test_report_matches_test(test_name, report, expected):
    assert report_matches_test(test_name, report) is expected


def test_merge_overwrites_only_approval_and_priority(existing):
    merged = merge_doctor_edits(
        existing,
        [
            RequiredTestEdit(id="t1", is_approved=True, priority="medium"),
            RequiredTestEdit(id="t2", is_approved=False, priority="low"),
            RequiredTestEdit(id="t3", is_approved=True, priority="high"),
        ],
    )
    assert [t.id for t in merged] == ["t1", "t2", "t3"]
    assert merged[0].is_approved and merged[0].priority == "medium"
    assert merged[0].name == "Complete Blood Count"
    assert merged[0].source == "ai-suggested"
    assert merged[1].priority == "low"


def test_merge_drops_omitted_doctor_added_test_and_appends_new(existing):
    merged = merge_doctor_edits(
        existing,
        [
            RequiredTestEdit(id="t1", is_approved=True, priority="high"),
            RequiredTestEdit(id="t2", is_approved=False, priority="medium"),
        ],
        [NewRequiredTest(name=" Thyroid Panel ", reason="Fatigue")],
    )
    assert [t.name for t in merged] == ["Complete Blood Count", "Chest X-Ray", "Thyroid Panel"]
    added = merged[-1]
    assert added.source == "doctor-added"
    assert added.is_approved is True
    assert added.position == 3


def test_merge_rejects_omitted_ai_suggested_test(existing):
    with pytest.raises(ValidationError):
        merge_doctor_edits(existing, [RequiredTestEdit(id="t1", is_approved=True, priority="high")])


def test_merge_rejects_unknown_test_id(existing):
    edits = [
        RequiredTestEdit(id="t1", is_approved=True, priority="high"),
        RequiredTestEdit(id="t2", is_approved=True, priority="high"),
        RequiredTestEdit(id="missing", is_approved=True, priority="high"),
    ]
    with pytest.raises(UnknownTest):
        merge_doctor_edits(existing, edits)
    assert existing[1].priority == "medium"


def test_merge_rejects_duplicate_ids(existing):
    edits = [
        RequiredTestEdit(id="t1", is_approved=True, priority="high"),
        RequiredTestEdit(id="t1", is_approved=False, priority="low"),
        RequiredTestEdit(id="t2", is_approved=True, priority="high"),
    ]
    with pytest.raises(ValidationError):
        merge_doctor_edits(existing, edits)


def test_gating_only_counts_approved_high_priority_tests():
    tests = [
        _test("t1", "Complete Blood Count", priority="high", approved=True),
        _test("t2", "Chest X-Ray", priority="medium", approved=True),
        _test("t3", "MRI", priority="high", approved=False),
    ]
    unreviewed = [_report("cbc", "Complete Blood Count", reviewed=False)]
    reviewed = [_report("cbc", "Complete Blood Count", reviewed=True)]

    assert not all_gating_tests_satisfied(tests, unreviewed)
    assert all_gating_tests_satisfied(tests, reviewed)
    assert [t.id for t in unsatisfied_tests(tests, reviewed)] == ["t2"]
