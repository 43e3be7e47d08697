"""
Action Catalog - The fixed set of actions the engine may suggest.

Templates are plain dicts; the engine copies them into SuggestedAction
instances so callers can never mutate the catalog.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Any

from ..models.session import Mode

CATALOG_VERSION = "1.0.0"


def _action(action_id: str, label: str, icon: str, category: str, description: str) -> Dict[str, Any]:
    return {
        "id": action_id,
        "label": label,
        "icon": icon,
        "category": category,
        "description": description,
    }


BASE_ACTIONS: Dict[Mode, List[Dict[str, Any]]] = {
    Mode.RESEARCHER: [
        _action("search-nearby", "Search Nearby", "MapPin", "research",
                "Find relevant information and resources in your area"),
        _action("analyze-trends", "Analyze Trends", "TrendingUp", "research",
                "Analyze current trends and patterns in your topic"),
        _action("find-sources", "Find Sources", "BookOpen", "research",
                "Discover reliable sources and references"),
        _action("create-research-plan", "Research Plan", "FileText", "research",
                "Create a structured research methodology"),
    ],
    Mode.CREATOR: [
        _action("create-intent", "Create Intent", "Plus", "create",
                "Transform ideas into actionable intents"),
        _action("brainstorm-ideas", "Brainstorm Ideas", "Lightbulb", "create",
                "Generate creative solutions and concepts"),
        _action("design-workflow", "Design Workflow", "GitBranch", "create",
                "Create step-by-step process flows"),
        _action("generate-content", "Generate Content", "FileText", "create",
                "Create written content and materials"),
    ],
    Mode.ANALYST: [
        _action("data-analysis", "Data Analysis", "BarChart3", "analyze",
                "Perform comprehensive data analysis"),
        _action("create-report", "Create Report", "FileBarChart", "analyze",
                "Generate detailed analytical reports"),
        _action("performance-metrics", "Performance Metrics", "Activity", "analyze",
                "Track and analyze key performance indicators"),
        _action("compare-options", "Compare Options", "Scale", "analyze",
                "Analyze and compare different alternatives"),
    ],
}


@dataclass(frozen=True)
class ActionTrigger:
    """Suggest ``template`` when ``predicate`` matches the lowercased conversation text."""
    predicate: Callable[[str], bool]
    template: Dict[str, Any]


def contains_any(*keywords: str) -> Callable[[str], bool]:
    return lambda text: any(keyword in text for keyword in keywords)


TRIGGERS: List[ActionTrigger] = [
    ActionTrigger(
        contains_any("help", "need"),
        _action("create-help-intent", "Create Help Request", "HelpCircle", "intent",
                "Create an intent to get help from the community"),
    ),
    ActionTrigger(
        contains_any("learn", "tutorial"),
        _action("find-learning-resources", "Find Learning Resources", "GraduationCap", "research",
                "Discover educational materials and tutorials"),
    ),
    ActionTrigger(
        contains_any("collaborate", "collaborator", "team"),
        _action("find-collaborators", "Find Collaborators", "Users", "network",
                "Connect with potential collaborators"),
    ),
    ActionTrigger(
        contains_any("project", "build"),
        _action("create-project-plan", "Create Project Plan", "Calendar", "create",
                "Structure your project with milestones"),
    ),
]

LOCATION_INSIGHTS = _action("location-insights", "Location Insights", "Globe", "research",
                            "Get insights specific to {place}")

LOCATION_ACTIONS: Dict[Mode, Dict[str, Any]] = {
    Mode.RESEARCHER: _action("local-research", "Local Research", "MapPin", "research",
                             "Find local research institutions and resources"),
    Mode.CREATOR: _action("local-opportunities", "Local Opportunities", "Target", "create",
                          "Discover local business and creative opportunities"),
    Mode.ANALYST: _action("local-market-data", "Local Market Data", "TrendingUp", "analyze",
                          "Analyze local market trends and data"),
}


def all_templates() -> List[Dict[str, Any]]:
    """Every catalog entry once, in a stable order."""
    seen = set()
    templates = []
    candidates = [a for mode in Mode for a in BASE_ACTIONS[mode]]
    candidates += [t.template for t in TRIGGERS]
    candidates += [LOCATION_INSIGHTS] + [LOCATION_ACTIONS[mode] for mode in Mode]
    for template in candidates:
        if template["id"] not in seen:
            seen.add(template["id"])
            templates.append(template)
    return templates
