from learnsig.core.fingerprint import canonical_json, compute_inputs_hash


def test_hash_is_stable_and_hex() -> None:
    inputs = {"decision_id": "d-1", "approved": True, "reviewer_role": "lead"}

    first = compute_inputs_hash(inputs)
    second = compute_inputs_hash(dict(inputs))

    assert first == second
    assert len(first) == 64
    int(first, 16)


def test_hash_ignores_key_order_at_every_depth() -> None:
    left = {"a": 1, "b": {"x": [1, 2], "y": {"p": "q", "r": None}}}
    right = {"b": {"y": {"r": None, "p": "q"}, "x": [1, 2]}, "a": 1}

    assert canonical_json(left) == canonical_json(right)
    assert compute_inputs_hash(left) == compute_inputs_hash(right)


def test_hash_changes_with_any_value() -> None:
    base = {
        "decision_id": "none",
        "approved": True,
        "confidence_adjustment": 0.0,
        "reviewer_role": "unknown",
    }
    variants = [
        {**base, "decision_id": "d-2"},
        {**base, "approved": False},
        {**base, "confidence_adjustment": 0.25},
        {**base, "reviewer_role": "Unknown"},
        {**base, "extra": None},
    ]

    digests = {compute_inputs_hash(base)} | {compute_inputs_hash(v) for v in variants}
    assert len(digests) == len(variants) + 1


def test_list_order_is_significant() -> None:
    assert compute_inputs_hash({"tags": ["a", "b"]}) != compute_inputs_hash({"tags": ["b", "a"]})
