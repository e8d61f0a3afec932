from feedback360.services.bulk_import import parse_relationship_csv


def test_parse_relationship_csv_matches_loose_headers():
    content = "\ufeffevaluator_code, Subject Code ,RELATIONSHIP\nE1,E2,Peer\nE3,,Manager\n"
    rows = parse_relationship_csv(content)
    assert [(r.evaluator_code, r.subject_code, r.relationship) for r in rows] == [
        ("E1", "E2", "Peer"),
        ("E3", "", "Manager"),
    ]


def test_parse_relationship_csv_missing_column():
    rows = parse_relationship_csv("EvaluatorCode,Relationship\nE1,Peer\n")
    assert rows[0].subject_code is None
    assert rows[0].relationship == "Peer"


def test_parse_relationship_csv_header_only():
    assert parse_relationship_csv("EvaluatorCode,SubjectCode,Relationship\n") == []
