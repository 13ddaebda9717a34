import json
from typing import Any, Callable, Dict, List

from .schemas import ToolCall, ToolOutput


ToolHandler = Callable[[Dict[str, Any]], Dict[str, Any]]


def search_market_data(args: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "status": "success",
        "data": {
            "query": args.get("query"),
            "type": args.get("dataType"),
            "timeframe": args.get("timeframe"),
            "results": f"Market data found for {args.get('query')}",
        },
    }


def analyze_competitors(args: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "status": "success",
        "data": {
            "company": args.get("companyName"),
            "aspects": args.get("aspects"),
            "analysis": f"Competitor analysis for {args.get('companyName')}",
        },
    }


def get_market_trends(args: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "status": "success",
        "data": {
            "industry": args.get("industry"),
            "trendType": args.get("trendType"),
            "trends": f"Market trends for {args.get('industry')}",
        },
    }


TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "search_market_data": search_market_data,
    "analyze_competitors": analyze_competitors,
    "get_market_trends": get_market_trends,
}


def dispatch_tool_call(call: ToolCall, handlers: Dict[str, ToolHandler] = TOOL_HANDLERS) -> Dict[str, Any]:
    handler = handlers.get(call.name)
    if handler is None:
        return {"status": "error", "message": f"Unknown function: {call.name}"}
    try:
        args = json.loads(call.arguments or "{}")
    except ValueError:
        return {"status": "error", "message": f"Invalid arguments for {call.name}"}
    if not isinstance(args, dict):
        return {"status": "error", "message": f"Invalid arguments for {call.name}"}
    return handler(args)


def build_tool_outputs(
    tool_calls: List[ToolCall],
    handlers: Dict[str, ToolHandler] = TOOL_HANDLERS,
) -> List[ToolOutput]:
    """Answer every pending call, keyed by call id and kept in call order."""
    return [
        ToolOutput(tool_call_id=call.id, output=json.dumps(dispatch_tool_call(call, handlers)))
        for call in tool_calls
    ]
