"""
Action Suggestion Engine.

Pure, deterministic suggestions derived from mode, recent conversation text and
location, plus a fixed table of action executors. The engine never touches the
session store.
"""

import logging
from typing import Optional, List, Dict, Any, Sequence, Callable, Awaitable

from ..models.actions import SuggestedAction, ActionResult
from ..models.session import Mode
from ..models.user import UserLocation
from .catalog import (
    CATALOG_VERSION, BASE_ACTIONS, TRIGGERS, LOCATION_INSIGHTS, LOCATION_ACTIONS, all_templates,
)

logger = logging.getLogger(__name__)

RECENT_TURN_WINDOW = 5

Executor = Callable[[Dict[str, Any]], Awaitable[ActionResult]]


def _text_of(turn: Any) -> str:
    if isinstance(turn, str):
        return turn
    return getattr(turn, "content", "") or ""


class ActionEngine:
    """Suggests and executes catalog actions."""

    catalog_version = CATALOG_VERSION

    def __init__(self):
        self._executors: Dict[str, Executor] = {
            "create-intent": self._create_intent,
            "search-nearby": self._search_nearby,
            "analyze-trends": self._analyze_trends,
            "brainstorm-ideas": self._brainstorm_ideas,
            "data-analysis": self._data_analysis,
            "location-insights": self._location_insights,
            "find-collaborators": self._find_collaborators,
            "create-project-plan": self._create_project_plan,
        }

    # ---- Suggestions ----

    def suggest(
        self,
        mode: Mode,
        recent_turns: Sequence[Any],
        location: Optional[UserLocation] = None,
    ) -> List[SuggestedAction]:
        """
        Compute suggested actions.

        Args:
            mode: Session mode, selects the base set
            recent_turns: Turns (or plain strings) oldest first; only the
                last five are scanned
            location: Optional user location

        Returns:
            Base actions, then triggered, then location actions. When two
            entries share an id the first one wins.
        """
        mode = Mode(mode)
        candidates: List[Dict[str, Any]] = [dict(a) for a in BASE_ACTIONS[mode]]

        window = list(recent_turns)[-RECENT_TURN_WINDOW:]
        text = " ".join(_text_of(turn) for turn in window).lower()
        for trigger in TRIGGERS:
            if trigger.predicate(text):
                candidates.append(dict(trigger.template))

        if location is not None:
            insights = dict(LOCATION_INSIGHTS)
            insights["description"] = insights["description"].format(place=location.city or "your area")
            insights["parameters"] = {"location": location.model_dump(exclude_none=True)}
            candidates.append(insights)
            candidates.append(dict(LOCATION_ACTIONS[mode]))

        seen = set()
        actions = []
        for candidate in candidates:
            if candidate["id"] in seen:
                continue
            seen.add(candidate["id"])
            actions.append(SuggestedAction(**candidate))
        return actions

    def catalog(self) -> List[Dict[str, Any]]:
        """Catalog entries with whether each can be executed."""
        return [
            {**template, "executable": template["id"] in self._executors}
            for template in all_templates()
        ]

    # ---- Execution ----

    async def execute(self, action_id: str, parameters: Optional[Dict[str, Any]] = None) -> ActionResult:
        """Run an action. Never raises; failures come back as unsuccessful results."""
        parameters = parameters or {}
        executor = self._executors.get(action_id)
        if executor is None:
            logger.info(f"Action requested but not implemented: {action_id}")
            return ActionResult(
                action_id=action_id,
                success=False,
                implemented=False,
                message=f"Action {action_id} is not implemented yet",
                data={"actionId": action_id, "parameters": parameters},
                catalog_version=CATALOG_VERSION,
            )

        try:
            result = await executor(parameters)
        except Exception as e:
            logger.error(f"Error executing action {action_id}: {e}", exc_info=True)
            return ActionResult(
                action_id=action_id,
                success=False,
                message=f"Failed to execute action: {e}",
                catalog_version=CATALOG_VERSION,
            )

        logger.info(
            f"Action executed: {action_id}",
            extra={"extra_fields": {"action_id": action_id, "success": result.success}}
        )
        return result

    def _result(self, action_id: str, message: str, data: Dict[str, Any],
                follow_up: Optional[List[SuggestedAction]] = None) -> ActionResult:
        return ActionResult(
            action_id=action_id,
            success=True,
            message=message,
            data=data,
            follow_up_actions=follow_up or [],
            catalog_version=CATALOG_VERSION,
        )

    async def _create_intent(self, parameters: Dict[str, Any]) -> ActionResult:
        return self._result(
            "create-intent",
            "Intent creation wizard initiated. Please provide details about what you need help with.",
            {"wizard": True, "step": "title", "fields": ["title", "description", "category", "type"]},
            follow_up=[SuggestedAction(
                id="intent-wizard-next",
                label="Continue",
                icon="ArrowRight",
                category="wizard",
                description="Continue with intent creation",
            )],
        )

    async def _search_nearby(self, parameters: Dict[str, Any]) -> ActionResult:
        return self._result(
            "search-nearby",
            "Searching for nearby resources and connections...",
            {
                "searchType": "nearby",
                "radius": parameters.get("radius") or 10,
                "results": [
                    {"type": "user", "name": "Local Expert", "distance": "2.3 km"},
                    {"type": "resource", "name": "Research Library", "distance": "1.8 km"},
                    {"type": "event", "name": "Tech Meetup", "distance": "3.1 km"},
                ],
            },
        )

    async def _analyze_trends(self, parameters: Dict[str, Any]) -> ActionResult:
        return self._result(
            "analyze-trends",
            "Analyzing current trends and patterns...",
            {
                "trends": [
                    {"topic": "AI Development", "growth": "+45%", "timeframe": "last 6 months"},
                    {"topic": "Remote Collaboration", "growth": "+23%", "timeframe": "last 3 months"},
                    {"topic": "Sustainable Tech", "growth": "+67%", "timeframe": "last year"},
                ],
                "insights": "AI development shows strong growth, particularly in collaborative AI systems.",
            },
        )

    async def _brainstorm_ideas(self, parameters: Dict[str, Any]) -> ActionResult:
        return self._result(
            "brainstorm-ideas",
            "Generating creative ideas and solutions...",
            {
                "ideas": [
                    "AI-powered collaboration platform",
                    "Location-based skill sharing network",
                    "Automated project matching system",
                    "Real-time expertise discovery tool",
                ],
                "techniques": ["Mind mapping", "SCAMPER method", "Design thinking", "Lateral thinking"],
            },
        )

    async def _data_analysis(self, parameters: Dict[str, Any]) -> ActionResult:
        return self._result(
            "data-analysis",
            "Performing comprehensive data analysis...",
            {
                "metrics": {
                    "userEngagement": "78%",
                    "taskCompletion": "92%",
                    "collaborationRate": "65%",
                },
                "recommendations": [
                    "Increase user onboarding efficiency",
                    "Enhance collaboration features",
                    "Optimize task matching algorithms",
                ],
            },
        )

    async def _location_insights(self, parameters: Dict[str, Any]) -> ActionResult:
        location = parameters.get("location")
        if location is None:
            location = (parameters.get("userContext") or {}).get("location")
        city = location.get("city") if isinstance(location, dict) else None
        return self._result(
            "location-insights",
            f"Gathering insights for {city or 'your area'}...",
            {
                "location": location,
                "insights": [
                    "High concentration of tech professionals",
                    "Active startup ecosystem",
                    "Strong university research presence",
                    "Growing AI/ML community",
                ],
                "opportunities": [
                    "Tech meetups and conferences",
                    "Research collaboration opportunities",
                    "Startup incubator programs",
                ],
            },
        )

    async def _find_collaborators(self, parameters: Dict[str, Any]) -> ActionResult:
        return self._result(
            "find-collaborators",
            "Finding potential collaborators in your network...",
            {
                "collaborators": [
                    {"name": "Alex Chen", "skills": ["AI/ML", "Python"], "match": "95%"},
                    {"name": "Sarah Johnson", "skills": ["Design", "UX"], "match": "87%"},
                    {"name": "Mike Rodriguez", "skills": ["Backend", "DevOps"], "match": "82%"},
                ],
                "suggestions": "Based on your current project needs and skill requirements",
            },
        )

    async def _create_project_plan(self, parameters: Dict[str, Any]) -> ActionResult:
        return self._result(
            "create-project-plan",
            "Creating structured project plan...",
            {
                "phases": [
                    {"name": "Planning", "duration": "1 week",
                     "tasks": ["Requirements", "Design", "Timeline"]},
                    {"name": "Development", "duration": "4 weeks",
                     "tasks": ["Implementation", "Testing", "Integration"]},
                    {"name": "Launch", "duration": "1 week",
                     "tasks": ["Deployment", "Monitoring", "Documentation"]},
                ],
                "milestones": ["MVP Complete", "Beta Testing", "Production Launch"],
            },
        )
