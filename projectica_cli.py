import argparse
import json
import os
import sys
from typing import List, Optional

import httpx


DEFAULT_API_BASE = "http://127.0.0.1:8000"
USER_HEADER = "X-User-Email"


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def _headers(args: argparse.Namespace) -> dict:
    return {USER_HEADER: args.user or ""}


def _print_error(resp: httpx.Response) -> None:
    try:
        message = resp.json().get("error")
    except ValueError:
        message = resp.text
    print(f"Request failed: HTTP {resp.status_code} {message or ''}".rstrip())


def run_project_create(args: argparse.Namespace) -> int:
    with httpx.Client(headers=_headers(args)) as client:
        resp = client.post(_join_url(args.base_url, "/api/projects"), json={"title": args.title}, timeout=10)
        if resp.status_code >= 400:
            _print_error(resp)
            return 1
        project = resp.json().get("project") or {}
        print(project.get("id", ""))
    return 0


def run_ask(args: argparse.Namespace) -> int:
    payload = {"input": args.input, "conversationKey": args.project}
    if args.model:
        payload["model"] = args.model
    with httpx.Client(headers=_headers(args)) as client:
        resp = client.post(_join_url(args.base_url, "/api/ask"), json=payload, timeout=args.timeout)
        if resp.status_code >= 400:
            _print_error(resp)
            return 1
        print(resp.json().get("response", ""))
    return 0


def run_search(args: argparse.Namespace) -> int:
    with httpx.Client(headers=_headers(args)) as client:
        resp = client.post(
            _join_url(args.base_url, "/api/agent/market/search"),
            json={"query": args.query},
            timeout=args.timeout,
        )
        if resp.status_code >= 400:
            _print_error(resp)
            return 1
        data = resp.json()
    print(data.get("analysis", ""))
    references = data.get("references") or []
    if references:
        print("\nReferences:")
        for idx, ref in enumerate(references, start=1):
            print(f"[{idx}] {ref.get('title') or ref.get('url')} - {ref.get('url')}")
    if args.json:
        print(json.dumps(data, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Projectica CLI")
    parser.add_argument("--base-url", default=DEFAULT_API_BASE, help="API base URL")
    parser.add_argument("--user", default=os.getenv("PROJECTICA_USER"), help="Caller identity (email)")
    parser.add_argument("--timeout", type=float, default=120.0, help="Request timeout in seconds")
    subparsers = parser.add_subparsers(dest="command")

    project = subparsers.add_parser("project", help="Project management")
    project_sub = project.add_subparsers(dest="project_cmd")
    create = project_sub.add_parser("create", help="Create a project")
    create.add_argument("title", nargs="?", default=None, help="Project title")

    ask = subparsers.add_parser("ask", help="Ask the planning assistant")
    ask.add_argument("project", help="Project id")
    ask.add_argument("input", help="Message for the assistant")
    ask.add_argument("--model", default=None, help="Model override for this run")

    search = subparsers.add_parser("search", help="Market search with references")
    search.add_argument("query", help="Search query")
    search.add_argument("--json", action="store_true", help="Also print the raw JSON response")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "project" and args.project_cmd == "create":
        return run_project_create(args)
    if args.command == "ask":
        return run_ask(args)
    if args.command == "search":
        return run_search(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
