from geoquest.services.live_board import LiveBoard

def score(team, total):
    return {"event": "scoreUpdate", "data": {"teamName": team, "totalScore": total}}

def test_push_events_build_a_ranked_board():
    board = LiveBoard()
    board.apply_event(score("De Vossen", 40))
    snap = board.apply_event(score("De Uilen", 65))
    assert [r.team_name for r in snap.rows] == ["De Uilen", "De Vossen"]
    assert snap.rank_of("De Vossen") == 2
    assert snap.version == 2

def test_scores_never_go_down():
    board = LiveBoard()
    board.apply_event(score("De Vossen", 80))
    # a poll taken before the push landed
    snap = board.apply_poll("active", [{"team_name": "De Vossen", "total_score": 40}])
    assert snap.score_of("De Vossen") == 80
    snap = board.apply_event(score("De Vossen", 60))
    assert snap.score_of("De Vossen") == 80

def test_snapshots_are_immutable():
    board = LiveBoard()
    first = board.apply_event(score("De Vossen", 10))
    board.apply_event(score("De Vossen", 20))
    assert first.score_of("De Vossen") == 10
    assert board.snapshot().score_of("De Vossen") == 20

def test_unlock_and_status_events():
    board = LiveBoard()
    board.apply_event({"event": "checkpointUnlocked",
                       "data": {"teamName": "De Uilen", "checkpointIndex": 1, "checkpointName": "Westerkerk"}})
    snap = board.apply_event({"event": "sessionStatusChanged", "data": {"status": "paused"}})
    assert snap.status == "paused"
    assert snap.rows[0].checkpoint_index == 2
    assert snap.rows[0].total_score == 0

def test_unknown_events_do_not_publish():
    board = LiveBoard()
    seen = []
    unsubscribe = board.observe(seen.append)
    board.apply_event({"event": "teamPosition", "data": {}})
    assert seen == []
    board.apply_event(score("De Vossen", 5))
    assert len(seen) == 1
    unsubscribe()
    board.apply_event(score("De Vossen", 6))
    assert len(seen) == 1
