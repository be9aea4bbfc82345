import random

import pytest

from weather_locations.merge import (
    LocationIndex,
    is_same_location,
    merge_batch,
    merge_daily,
)
from weather_locations.records import DailyObservation, LocationRecord, StoredLocation


def slots(**rain_by_day):
    """slots(d1="10", d3="5") -> 5-slot tuple with those days filled."""
    out = [None] * 5
    for key, rain in rain_by_day.items():
        day = int(key[1:])
        out[day - 1] = DailyObservation(day=day, rain=rain)
    return tuple(out)


def rec(village="Mylapore", lat="13.0337", lng="80.2679", state="Tamil Nadu", daily=None):
    return LocationRecord(
        state=state,
        district="Chennai",
        block="Mylapore",
        village=village,
        latitude=lat,
        longitude=lng,
        daily=daily if daily is not None else slots(d1="10"),
    )


def stored(id, **kwargs):
    r = rec(**kwargs)
    return StoredLocation(id=id, **{f: getattr(r, f) for f in
                                   ("state", "district", "block", "village", "latitude", "longitude", "daily")})


def apply(plan, snapshot):
    """What the storage layer would hold after writing the plan."""
    by_id = {s.id: s for s in snapshot}
    for update in plan.to_update:
        by_id[update.target_id] = by_id[update.target_id].with_changes(daily=update.daily, **update.admin)
    next_id = max(by_id, default=0) + 1
    for r in plan.to_insert:
        by_id[next_id] = stored(next_id, village=r.village, lat=r.latitude, lng=r.longitude,
                                state=r.state, daily=r.daily)
        next_id += 1
    return [by_id[k] for k in sorted(by_id)]


def test_identity_is_symmetric():
    rng = random.Random(7)
    points = []
    for _ in range(200):
        lat = 13.0 + rng.choice([0, 0.00005, 0.0001, 0.00015, -0.0000999]) + rng.random() * 1e-5
        lng = 80.0 + rng.choice([0, 0.00005, 0.0001, -0.0001]) + rng.random() * 1e-5
        points.append(rec(lat=repr(lat), lng=repr(lng), village=rng.choice(["A", "B"])))

    for a in points[:50]:
        for b in points:
            assert is_same_location(a, b) == is_same_location(b, a)


def test_coordinate_tolerance():
    base = rec(lat="13.0337", lng="80.2679")
    assert is_same_location(base, rec(lat="13.03375", lng="80.26785"))
    assert not is_same_location(base, rec(lat="13.0339", lng="80.2679"))
    assert not is_same_location(base, rec(lat="13.0337", lng="80.2681"))


def test_coordinates_alone_are_not_enough():
    assert not is_same_location(rec(village="North Hamlet"), rec(village="South Hamlet"))


def test_identity_fields_are_configurable():
    a, b = rec(state="Tamil Nadu"), rec(state="TN")
    assert not is_same_location(a, b)
    assert is_same_location(a, b, admin_fields=("district", "block", "village"))
    assert is_same_location(rec(village="X"), rec(village="Y"), admin_fields=())


def test_merge_daily_overwrites_without_appending():
    existing = slots(d1="1", d2="2", d3="3")
    merged = merge_daily(existing, slots(d2="20"))

    assert [d.rain if d else None for d in merged] == ["1", "20", "3", None, None]
    assert merged[0] is existing[0]
    assert merged[2] is existing[2]


def test_merge_daily_pads_short_sequences():
    merged = merge_daily((DailyObservation(day=1, rain="1"),), slots(d5="5"))
    assert [d.rain if d else None for d in merged] == ["1", None, None, None, "5"]


def test_single_new_location_is_inserted():
    incoming = [rec(daily=slots(d1="10", d2="0", d3="5"))]

    plan = merge_batch(incoming, [])

    assert plan.to_insert == incoming
    assert plan.to_update == []
    assert (plan.inserted_count, plan.updated_count, plan.total_processed) == (1, 0, 1)


def test_matching_location_is_updated():
    snapshot = [stored(11, daily=slots(d1="1", d2="2", d3="3"))]
    incoming = [rec(daily=slots(d2="22"))]

    plan = merge_batch(incoming, snapshot)

    assert plan.to_insert == []
    assert len(plan.to_update) == 1
    update = plan.to_update[0]
    assert update.target_id == 11
    assert [d.rain if d else None for d in update.daily] == ["1", "22", "3", None, None]
    assert update.admin == {"state": "Tamil Nadu", "district": "Chennai", "block": "Mylapore", "village": "Mylapore"}
    # snapshot untouched
    assert snapshot[0].daily[1].rain == "2"


def test_admin_names_replaced_wholesale():
    snapshot = [stored(3, state="Old State")]
    incoming = [rec(state="Tamil Nadu", daily=slots(d4="4"))]

    plan = merge_batch(incoming, snapshot, admin_fields=("district", "block", "village"))

    assert plan.updated_count == 1
    assert plan.to_update[0].admin["state"] == "Tamil Nadu"


def test_name_collision_produces_two_inserts():
    incoming = [rec(village="North Hamlet"), rec(village="South Hamlet")]

    plan = merge_batch(incoming, [])

    assert plan.inserted_count == 2
    assert plan.updated_count == 0


def test_name_collision_against_stored_is_an_insert():
    plan = merge_batch([rec(village="South Hamlet")], [stored(1, village="North Hamlet")])
    assert plan.inserted_count == 1
    assert plan.updated_count == 0


def test_first_stored_match_wins():
    snapshot = [stored(5), stored(2)]
    plan = merge_batch([rec()], snapshot)
    assert plan.to_update[0].target_id == 5


def test_repeated_incoming_records_apply_in_order():
    snapshot = [stored(1, daily=slots(d1="1", d3="3"))]
    incoming = [rec(daily=slots(d1="100")), rec(daily=slots(d1="200", d2="2"))]

    plan = merge_batch(incoming, snapshot)

    assert plan.updated_count == 2
    first, last = plan.to_update
    assert [d.rain if d else None for d in first.daily] == ["100", None, "3", None, None]
    assert [d.rain if d else None for d in last.daily] == ["200", "2", "3", None, None]


def test_remerge_is_idempotent():
    incoming = [
        rec(village="A", daily=slots(d1="1", d2="2")),
        rec(village="B", lat="12.9", lng="77.6", daily=slots(d3="3")),
    ]
    existing = [stored(1, village="A", daily=slots(d1="0", d5="5"))]

    first = merge_batch(incoming, existing)
    after_first = apply(first, existing)

    second = merge_batch(incoming, after_first)
    after_second = apply(second, after_first)

    assert second.inserted_count == 0
    assert second.updated_count == len(incoming)
    assert second.total_processed == len(incoming)
    assert [s.daily for s in after_second] == [s.daily for s in after_first]
    assert [u.daily for u in second.to_update] == [s.daily for s in after_first]


def test_total_processed_matches_batch_size():
    snapshot = [stored(1, village="A"), stored(2, village="B")]
    incoming = [rec(village="A"), rec(village="C"), rec(village="B"), rec(village="A")]

    plan = merge_batch(incoming, snapshot)

    assert plan.total_processed == len(incoming)
    assert plan.inserted_count == 1
    assert [u.target_id for u in plan.to_update] == [1, 2, 1]


def test_grid_lookup_agrees_with_linear_scan():
    rng = random.Random(1234)
    tol = 1e-4
    snapshot = []
    for i in range(300):
        # cluster around cell edges (cells are 2 * tol wide)
        lat = 20 + rng.randint(-5, 5) * 2 * tol + rng.uniform(-1.2, 1.2) * tol
        lng = 70 + rng.randint(-5, 5) * 2 * tol + rng.uniform(-1.2, 1.2) * tol
        snapshot.append(stored(i + 1, lat=repr(lat), lng=repr(lng), village=rng.choice("AB")))

    index = LocationIndex(snapshot, tolerance=tol)
    for _ in range(300):
        lat = 20 + rng.uniform(-12, 12) * tol
        lng = 70 + rng.uniform(-12, 12) * tol
        probe = rec(lat=repr(lat), lng=repr(lng), village=rng.choice("AB"))

        linear = next((pos for pos, s in enumerate(snapshot) if is_same_location(s, probe, tolerance=tol)), None)
        assert index.lookup(probe) == linear


def test_record_without_coordinates_is_rejected():
    with pytest.raises(ValueError):
        merge_batch([rec(lat="")], [])


def test_non_positive_tolerance_rejected():
    with pytest.raises(ValueError):
        merge_batch([rec()], [], tolerance=0)
