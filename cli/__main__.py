import argparse
import asyncio
import getpass
import json
import os
import sys

from sprintdesk.core.models import IssueStatus, IssueType, Priority, SpilloverPolicy

from . import auth as auth_cmd
from . import issues as issues_cmd
from . import projects as projects_cmd
from . import sprints as sprints_cmd
from . import webhooks as webhooks_cmd


def _add_scope(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--workspace-id", dest="workspace", default=None, help="Workspace id (env SPRINTDESK_WORKSPACE_ID)")
    parser.add_argument("--project", dest="project", default=None, help="Project id or key (env SPRINTDESK_PROJECT)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sprintdesk", description="SprintDesk tracker CLI")
    parser.add_argument("--json", action="store_true", help="Output JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_login = subparsers.add_parser("login", help="Sign in and remember the session")
    p_login.add_argument("--email", default=os.environ.get("SPRINTDESK_EMAIL"))
    p_login.add_argument("--password", default=os.environ.get("SPRINTDESK_PASSWORD"))

    subparsers.add_parser("logout", help="Sign out and forget the session")
    subparsers.add_parser("whoami", help="Show the signed-in user")
    subparsers.add_parser("workspaces", help="List workspaces")

    p_projects = subparsers.add_parser("projects", help="List projects of a workspace")
    p_projects.add_argument("--workspace-id", dest="workspace", default=None)

    p_issues = subparsers.add_parser("issues", help="List issues of a project")
    _add_scope(p_issues)
    p_issues.add_argument("--search", default=None, help="Filter by title or id")
    p_issues.add_argument("--backlog", action="store_true", help="Only issues without a sprint")

    p_create = subparsers.add_parser("create-issue", help="Create an issue")
    _add_scope(p_create)
    p_create.add_argument("--title", required=True)
    p_create.add_argument("--type", dest="issue_type", choices=[t.value for t in IssueType], default=IssueType.TASK.value)
    p_create.add_argument("--priority", choices=[p.value for p in Priority], default=Priority.MEDIUM.value)
    p_create.add_argument("--description", default="")
    p_create.add_argument("--points", dest="story_points", type=int, default=None)
    p_create.add_argument("--assignee-id", dest="assignee_id", default=None)
    p_create.add_argument("--sprint-id", dest="sprint_id", default=None)
    p_create.add_argument("--generate-description", action="store_true", help="Draft the description with AI")

    p_move = subparsers.add_parser("move-issue", help="Change issue status or sprint")
    _add_scope(p_move)
    p_move.add_argument("--id", dest="issue_id", required=True)
    p_move.add_argument("--status", choices=[s.value for s in IssueStatus], default=None)
    group = p_move.add_mutually_exclusive_group()
    group.add_argument("--sprint-id", dest="sprint_id", default=None)
    group.add_argument("--backlog", action="store_true")

    p_complete = subparsers.add_parser("complete-sprint", help="Complete a sprint and move unfinished issues")
    _add_scope(p_complete)
    p_complete.add_argument("--sprint-id", dest="sprint_id", default=None, help="Defaults to the active sprint")
    p_complete.add_argument(
        "--policy", choices=[p.value for p in SpilloverPolicy], default=SpilloverPolicy.BACKLOG.value
    )

    p_stats = subparsers.add_parser("stats", help="Dashboard metrics of a project")
    _add_scope(p_stats)

    p_serve = subparsers.add_parser("serve-webhooks", help="Run the realtime relay bound to a live store")
    _add_scope(p_serve)
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)
    return parser


def _print_rows(rows, fields) -> None:
    for row in rows:
        print(" | ".join(str(row.get(f)) for f in fields))


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    as_json = args.json

    def emit(result) -> None:
        if as_json:
            print(json.dumps(result, ensure_ascii=False, indent=2, default=str))

    async def _run() -> int:
        if args.command == "login":
            email = args.email or input("Email: ")
            password = args.password or getpass.getpass("Password: ")
            result = await auth_cmd.login(email, password, quiet=as_json)
            emit(result)
            if not as_json and result["ok"]:
                user = result["user"]
                print(f"Signed in as {user['name']} <{user['email']}> ({user['role']})")
            return 0 if result["ok"] else 1

        if args.command == "logout":
            emit(await auth_cmd.logout(quiet=as_json))
            return 0

        if args.command == "whoami":
            result = await auth_cmd.whoami()
            emit(result)
            if not as_json:
                if not result["authenticated"]:
                    print("Not signed in")
                    return 1
                user = result["user"]
                print(f"{user['name']} <{user['email']}> role={user['role']}")
                print(f"workspace={result['active_workspace_id']} project={result['active_project_id']}")
            return 0 if result["authenticated"] else 1

        if args.command == "workspaces":
            rows = await projects_cmd.list_workspaces()
            emit(rows)
            if not as_json:
                _print_rows(rows, ("id", "name", "ownerId", "active"))
            return 0

        if args.command == "projects":
            rows = await projects_cmd.list_projects(args.workspace)
            emit(rows)
            if not as_json:
                _print_rows(rows, ("id", "key", "name", "type", "active"))
            return 0

        if args.command == "issues":
            rows = await issues_cmd.list_issues(args.workspace, args.project, args.search, args.backlog)
            emit(rows)
            if not as_json:
                _print_rows(rows, ("id", "status", "priority", "storyPoints", "sprintId", "title"))
            return 0

        if args.command == "create-issue":
            row = await issues_cmd.create_issue(
                args.title,
                issue_type=args.issue_type,
                priority=args.priority,
                description=args.description,
                story_points=args.story_points,
                assignee_id=args.assignee_id,
                sprint_id=args.sprint_id,
                generate_description=args.generate_description,
                workspace=args.workspace,
                project=args.project,
                quiet=as_json,
            )
            emit(row)
            if not as_json and row:
                print(f"Created {row['id']}: {row['title']}")
            return 0 if row else 1

        if args.command == "move-issue":
            result = await issues_cmd.move_issue(
                args.issue_id,
                status=args.status,
                sprint_id=args.sprint_id,
                to_backlog=args.backlog,
                workspace=args.workspace,
                project=args.project,
                quiet=as_json,
            )
            emit(result)
            return 0 if result and result["ok"] else 1

        if args.command == "complete-sprint":
            result = await sprints_cmd.complete_sprint(
                args.sprint_id, args.policy, workspace=args.workspace, project=args.project, quiet=as_json
            )
            emit(result)
            if not as_json and result:
                print(
                    f"Sprint {result['sprint_id']}: moved={len(result['moved_issue_ids'])} "
                    f"failed={len(result['failed_issue_ids'])} destination={result['destination_sprint_id'] or 'backlog'}"
                )
            return 0 if result and not result["failed_issue_ids"] else 1

        if args.command == "stats":
            result = await sprints_cmd.project_stats(args.workspace, args.project)
            emit(result)
            if not as_json:
                progress = result["progress"]
                print(
                    f"Active sprint: {progress['completed_points']}/{progress['total_points']} points "
                    f"({progress['percentage']}%), days remaining: {progress['days_remaining']}"
                )
                print(f"Velocity (avg): {result['velocity']['average']}")
                print(f"Open: {result['open']['open']} critical={result['open']['critical']} high={result['open']['high']}")
                for status, count in result["status"].items():
                    print(f"  {status:12} {count}")
                for row in result["workload"]:
                    print(f"  {row['name']}: {row['issues']} issues, {row['points']} points")
            return 0

        if args.command == "serve-webhooks":
            await webhooks_cmd.serve(args.host, args.port, args.workspace, args.project)
            return 0

        parser.error(f"Unknown command {args.command}")
        return 2

    sys.exit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
