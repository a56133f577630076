# backend/tests/unit/test_validator.py
from flowbot.workflows.validator import validate_flow


def codes(flow):
    return [problem["error_code"] for problem in validate_flow(flow)]


def test_well_formed_flow_has_no_problems(make_flow):
    flow = make_flow(
        [
            ("t", "trigger", {"trigger_type": "regex", "trigger_value": r"^oi\b"}),
            ("c", "condition", {"left": "{{_message}}", "operator": "==", "right": "oi"}),
            ("a", "send_text", {"text": "A"}),
        ],
        [("t", "c"), ("c", "a", "true")],
    )
    assert validate_flow(flow) == []


def test_reports_each_structural_problem(make_flow):
    flow = make_flow(
        [
            ("c", "condition", {}),
            ("c", "send_text", {}),
            ("x", "carousel", {}),
        ],
        [("c", "x"), ("x", "ghost")],
    )
    assert codes(flow) == [
        "NO_TRIGGER",
        "DUPLICATE_NODE_ID",
        "UNKNOWN_NODE_TYPE",
        "INVALID_CONDITION_HANDLE",
        "DANGLING_EDGE",
    ]


def test_invalid_regex_trigger_is_reported(make_flow):
    flow = make_flow([("t", "trigger", {"trigger_type": "regex", "trigger_value": "(oops"})])
    problems = validate_flow(flow)

    assert [p["error_code"] for p in problems] == ["INVALID_REGEX"]
    assert problems[0]["is_valid"] is False
    assert "t" in problems[0]["message"]
