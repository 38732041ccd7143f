import pytest

from cli.__main__ import build_parser


def test_complete_sprint_defaults_to_backlog_policy():
    args = build_parser().parse_args(["complete-sprint", "--project", "WEB"])
    assert args.command == "complete-sprint"
    assert args.policy == "BACKLOG" and args.sprint_id is None
    assert args.project == "WEB"


def test_create_issue_options():
    args = build_parser().parse_args([
        "--json", "create-issue", "--title", "Login", "--type", "BUG", "--points", "3", "--generate-description",
    ])
    assert args.json and args.issue_type == "BUG" and args.story_points == 3
    assert args.generate_description


def test_move_issue_rejects_sprint_and_backlog_together():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["move-issue", "--id", "WEB-1", "--sprint-id", "sp-1", "--backlog"])


def test_webhook_runner_serves_a_live_store(monkeypatch):
    import run_webhook_server
    import webhooks.server

    calls = []

    async def fake_serve(*args):
        calls.append(args)

    monkeypatch.setattr(run_webhook_server, "serve", fake_serve)
    run_webhook_server.main()
    assert calls == [()]
    assert not hasattr(webhooks.server, "app") and not hasattr(webhooks.server, "hub")
