import copy
import importlib
import json
import sys
from pathlib import Path


def _load_module():
    if "lambda" not in sys.path:
        sys.path.insert(0, "lambda")
    import event_pattern as module

    return importlib.reload(module)


def _create_user_event(user_name="s3-user"):
    return {
        "version": "0",
        "id": "evt-1",
        "detail-type": "AWS API Call via CloudTrail",
        "source": "aws.iam",
        "account": "123456789012",
        "time": "2026-10-19T12:00:00Z",
        "region": "us-east-1",
        "detail": {
            "eventSource": "iam.amazonaws.com",
            "eventName": "CreateUser",
            "requestParameters": {"userName": user_name},
        },
    }


def test_create_user_event_matches():
    m = _load_module()
    assert m.matches_identity_creation(_create_user_event()) is True


def test_other_event_names_are_not_matched():
    m = _load_module()
    for name in ("DeleteUser", "CreateGroup", "createuser", "CreateUser ", ""):
        event = _create_user_event()
        event["detail"]["eventName"] = name
        assert m.matches_identity_creation(event) is False, name


def test_other_event_sources_are_not_matched():
    m = _load_module()
    for source in ("s3.amazonaws.com", "IAM.amazonaws.com", "iam"):
        event = _create_user_event()
        event["detail"]["eventSource"] = source
        assert m.matches_identity_creation(event) is False, source


def test_top_level_source_and_detail_type_must_match_exactly():
    m = _load_module()
    event = _create_user_event()
    event["source"] = "aws.IAM"
    assert m.matches_identity_creation(event) is False

    event = _create_user_event()
    event["detail-type"] = "AWS Console Sign In via CloudTrail"
    assert m.matches_identity_creation(event) is False

    event = _create_user_event()
    del event["detail-type"]
    assert m.matches_identity_creation(event) is False


def test_malformed_shapes_are_dropped_not_raised():
    m = _load_module()
    assert m.matches_identity_creation(None) is False
    assert m.matches_identity_creation("CreateUser") is False
    assert m.matches_identity_creation([_create_user_event()]) is False

    event = _create_user_event()
    event["detail"] = ["iam.amazonaws.com", "CreateUser"]
    assert m.matches_identity_creation(event) is False

    event = _create_user_event()
    event["detail"]["eventName"] = ["CreateUser"]
    assert m.matches_identity_creation(event) is False


def test_matching_does_not_mutate_the_event():
    m = _load_module()
    event = _create_user_event()
    before = copy.deepcopy(event)
    m.matches_identity_creation(event)
    assert event == before


def test_custom_pattern_lists_are_alternatives(tmp_path):
    m = _load_module()
    path = tmp_path / "pattern.json"
    path.write_text(json.dumps({"source": ["a", "b"], "detail": {"n": [1]}}))
    pattern = m.load_pattern(path)

    assert m.matches(pattern, {"source": "b", "detail": {"n": 1}}) is True
    assert m.matches(pattern, {"source": "c", "detail": {"n": 1}}) is False
    # bools are not ints for matching purposes
    assert m.matches(pattern, {"source": "a", "detail": {"n": True}}) is False


def test_load_pattern_rejects_empty_documents(tmp_path):
    m = _load_module()
    path = tmp_path / "pattern.json"
    path.write_text("{}")
    try:
        m.load_pattern(path)
    except ValueError as e:
        assert "non-empty" in str(e)
    else:
        raise AssertionError("expected ValueError")


def test_shipped_pattern_file_is_the_identity_creation_rule():
    doc = json.loads(Path("lambda/identity_event_pattern.json").read_text())
    assert doc == {
        "source": ["aws.iam"],
        "detail-type": ["AWS API Call via CloudTrail"],
        "detail": {
            "eventSource": ["iam.amazonaws.com"],
            "eventName": ["CreateUser"],
        },
    }
