"""Assistant profiles and prompt templates for the planning and market research agents."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class AssistantProfile:
    name: str
    description: str
    instructions: str
    model: str = "gpt-4"
    tools: List[Dict[str, Any]] = field(default_factory=list)

    def to_create_payload(self, model: Optional[str] = None) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "instructions": self.instructions,
            "model": model or self.model,
            "tools": [
                {"type": "function", "function": tool["function"]}
                for tool in self.tools
                if isinstance(tool, dict) and tool.get("function")
            ],
        }

    def tool_schema(self, name: str) -> Optional[Dict[str, Any]]:
        for tool in self.tools:
            function = tool.get("function") or {}
            if function.get("name") == name:
                return function
        return None


PLANNING_SYSTEM = """You are a project planning agent, called Projectica, tasked to talk with a client to help them create a project plan, but currently you are also professional as a digital marketer.

The project plan will then be executed by virtual assistants.

In each step of the conversation, you should make a draft of a project plan, and then ask a follow up question useful to improving it.

Your response should always follow this structure:

Project Plan: [Project Name]

Objective: [Briefly state the main goal]

Steps:

1. [Step Title]
   Description: [Explanation of why this step is important]
   Actions:
   - [Action 1]
   - [Action 2]
   - [Action 3]

Expected Outcome:
- [Key result 1]
- [Key result 2]

After presenting the plan, ask a follow-up question to improve the plan.

Please return plain text without Markdown formatting.
"""

RUN_INSTRUCTIONS = "Please provide a concise and actionable response based on the project context."

MARKET_EXPERT_INSTRUCTIONS = """You are an expert market research analyst. Your role is to help users conduct comprehensive market research, analyze competitors, and identify market trends.

Key responsibilities:
1. Market Analysis
- Analyze market size, growth rates, and market segments
- Identify key market drivers and barriers
- Research market trends and future projections

2. Competitor Analysis
- Research competitor products, strategies, and market positions
- Analyze competitors' strengths and weaknesses
- Identify competitive advantages and market gaps

3. Consumer Research
- Analyze target audience demographics and behaviors
- Identify customer needs and preferences
- Research buying patterns and decision factors

When conducting research:
1. First outline the key areas to investigate
2. Use available tools to gather relevant data
3. Analyze and synthesize information into actionable insights
4. Provide clear recommendations based on findings

Always:
- Use data to support your analysis
- Consider both qualitative and quantitative aspects
- Provide actionable recommendations
- Cite sources when possible
- Highlight key uncertainties or limitations in the analysis"""

MARKET_TOOLS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "search_market_data",
            "description": "Search for market data, statistics, and trends",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query for market information"},
                    "dataType": {
                        "type": "string",
                        "enum": ["market_size", "competitors", "trends", "consumers"],
                        "description": "Type of market data to search for",
                    },
                    "timeframe": {
                        "type": "string",
                        "enum": ["current", "historical", "forecast"],
                        "description": "Timeframe for the data",
                    },
                },
                "required": ["query", "dataType"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "analyze_competitors",
            "description": "Analyze specific competitors in the market",
            "parameters": {
                "type": "object",
                "properties": {
                    "companyName": {"type": "string", "description": "Name of the competitor to analyze"},
                    "aspects": {
                        "type": "array",
                        "description": "Aspects of the competitor to analyze",
                        "items": {
                            "type": "string",
                            "enum": ["products", "pricing", "strategy", "strengths", "weaknesses"],
                        },
                    },
                },
                "required": ["companyName"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_market_trends",
            "description": "Get current and emerging market trends",
            "parameters": {
                "type": "object",
                "properties": {
                    "industry": {"type": "string", "description": "Industry or market segment to analyze"},
                    "trendType": {
                        "type": "string",
                        "enum": ["consumer", "technology", "regulatory", "economic"],
                        "description": "Type of trends to analyze",
                    },
                },
                "required": ["industry"],
            },
        },
    },
]

PLANNING_ASSISTANT = AssistantProfile(
    name="Project Planning Assistant",
    description="Drafts and refines structured project plans with the client",
    instructions=PLANNING_SYSTEM,
)

MARKET_EXPERT = AssistantProfile(
    name="Market Research Expert",
    description="AI assistant specialized in market research, competitor analysis, and trend forecasting",
    instructions=MARKET_EXPERT_INSTRUCTIONS,
    tools=MARKET_TOOLS,
)

# Seeded into every user's agent list.
SYSTEM_AGENTS = [MARKET_EXPERT]

SEARCH_SYSTEM = (
    "You are a market research expert. Analyze the given query and provide detailed market insights "
    "including market size, growth rate, key players, and trends. Include reliable sources and data points. "
    "Use numbered references like [1], [2] etc. to cite your sources."
)

COMPETITOR_SYSTEM = (
    "You are a competitive analysis expert. Provide a detailed analysis of the specified company including "
    "their market position, products/services, strengths, weaknesses, and competitive advantages. "
    "Include recent data and market developments."
)


def missing_tool_params(profile: AssistantProfile, function_name: str, params: Dict[str, Any]) -> List[str]:
    schema = profile.tool_schema(function_name) or {}
    required = (schema.get("parameters") or {}).get("required") or []
    return [name for name in required if name not in params]


def market_function_prompt(function_name: str, params: Dict[str, Any]) -> str:
    if function_name == "search_market_data":
        timeframe = params.get("timeframe")
        lines = [
            "Please analyze the following market data:",
            f"- Query: {params.get('query')}",
            f"- Data Type: {params.get('dataType')}",
        ]
        if timeframe:
            lines.append(f"- Timeframe: {timeframe}")
        lines += [
            "",
            "Focus on providing:",
            "1. Key data points and statistics",
            "2. Major trends and patterns",
            "3. Market drivers and influencing factors",
            "4. Actionable insights and recommendations",
        ]
        return "\n".join(lines)
    if function_name == "analyze_competitors":
        aspects = params.get("aspects") or []
        lines = [f"Please provide a competitive analysis for {params.get('companyName')}:"]
        if aspects:
            lines.append(f"Focus on these aspects: {', '.join(str(a) for a in aspects)}")
        lines += [
            "",
            "Include in your analysis:",
            "1. Company overview",
            "2. Market positioning",
            "3. Competitive advantages",
            "4. Potential threats",
            "5. Strategic recommendations",
        ]
        return "\n".join(lines)
    if function_name == "get_market_trends":
        return "\n".join(
            [
                f"Please analyze {params.get('trendType') or 'general'} trends in the {params.get('industry')} industry.",
                "",
                "Include in your analysis:",
                "1. Current major trends",
                "2. Emerging trends",
                "3. Potential opportunities",
                "4. Possible threats",
                "5. Strategic recommendations",
            ]
        )
    raise ValueError(f"Unknown market function: {function_name}")


def search_prompt(query: str) -> str:
    return f"""Please provide a comprehensive market analysis for the following query: {query}

Your analysis should include:
1. Market Overview and Size
2. Key Competitors Analysis
3. Market Trends and Future Outlook
4. Opportunities and Challenges

Please format your response in Markdown with clear sections and bullet points.
For each major claim or data point, please cite your sources using numbered references like [1], [2], etc."""


def trends_prompt(industry: str, timeframe: str, trend_type: Optional[str], trends_data: Dict[str, Any]) -> str:
    return f"""Please analyze these industry trends and provide strategic insights:

Industry: {industry}
Trend Type: {trend_type or 'General'}
Timeframe: {timeframe}

Google Trends Data:
{json.dumps(trends_data, indent=2)}

Please provide a comprehensive analysis including:
1. Current Trend Analysis
   - Interest over time patterns
   - Geographic distribution insights
   - Key spikes and drops analysis

2. Related Topics Analysis
   - Emerging themes and categories
   - Consumer interest patterns
   - Industry connection points

3. Search Behavior Analysis
   - Popular search terms
   - User intent analysis
   - Content opportunity gaps

4. Strategic Implications
   - Market opportunities
   - Potential threats
   - Recommended actions

5. Future Projections
   - Short-term forecasts
   - Long-term trend predictions
   - Impact assessment
"""
