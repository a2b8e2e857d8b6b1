"""
Goal-based chain recommendation.

Scores the built-in templates against a free-text goal and either returns
the best template outright or assembles a custom chain from the agents the
goal calls for, ordered so every agent runs after the agents it builds on.
The recommender only proposes definitions; it never executes anything.
"""

import re
from typing import Any, Dict, List, Optional, Sequence

from agentchain.config.builtin_config import get_builtin_chain_templates
from agentchain.models.chain_models import ChainDefinition, StepDefinition, SuccessCriteria
from agentchain.models.constants import (
    AGENT_COST_PER_1K_TOKENS,
    NOMINAL_TOKENS_PER_STEP,
    AgentType,
    ChainCategory,
    ChainType,
    ExecutionMode,
)
from agentchain.models.recommendation_models import (
    ChainRecommendation,
    ChainTemplate,
    RecommendationPreferences,
    RecommendationRequest,
    TemplateMatch,
)
from agentchain.utils.logger import get_module_logger

logger = get_module_logger(__name__)

# Weighted template score components
GOAL_WEIGHT = 0.4
AGENT_WEIGHT = 0.3
CONSTRAINT_WEIGHT = 0.2
PERFORMANCE_WEIGHT = 0.1

DIRECT_TEMPLATE_THRESHOLD = 0.8
CUSTOM_CHAIN_CONFIDENCE = 0.75
MAX_ALTERNATIVES = 3

_STOPWORDS = {"a", "an", "and", "the", "for", "with", "our", "to", "of", "in", "on", "my", "we", "is"}

# Goal keyword -> agent it calls for, checked in this order
AGENT_KEYWORDS: Dict[AgentType, Sequence[str]] = {
    AgentType.TREND: ("trend", "viral", "popular", "market"),
    AgentType.SEO: ("seo", "search", "ranking", "keyword", "optimiz"),
    AgentType.CONTENT: ("content", "post", "write", "copy", "article", "blog"),
    AgentType.SOCIAL_POSTING: ("social", "viral", "engagement", "follower", "share"),
    AgentType.EMAIL_MARKETING: ("email", "newsletter", "nurture", "subscribe"),
    AgentType.CUSTOMER_SUPPORT: ("support", "help", "customer", "service"),
    AgentType.AD: ("ad ", "ads", "advert", "paid"),
    AgentType.DESIGN: ("design", "visual", "image", "creative"),
    AgentType.OUTREACH: ("outreach", "partner", "influencer"),
    AgentType.INSIGHT: ("insight", "analy", "report"),
    AgentType.BRAND_VOICE: ("brand", "tone", "voice"),
    AgentType.SEGMENT_ANALYZER: ("segment", "audience", "persona"),
}

# Agent -> agents whose output it builds on when both are in a chain
AGENT_DEPENDENCIES: Dict[AgentType, Sequence[AgentType]] = {
    AgentType.CONTENT: (AgentType.TREND, AgentType.SEO, AgentType.BRAND_VOICE),
    AgentType.SOCIAL_POSTING: (AgentType.CONTENT, AgentType.TREND, AgentType.DESIGN),
    AgentType.EMAIL_MARKETING: (AgentType.CONTENT, AgentType.SEGMENT_ANALYZER),
    AgentType.CUSTOMER_SUPPORT: (AgentType.EMAIL_MARKETING, AgentType.SOCIAL_POSTING),
    AgentType.AD: (AgentType.CONTENT, AgentType.DESIGN, AgentType.SEGMENT_ANALYZER),
    AgentType.DESIGN: (AgentType.BRAND_VOICE,),
    AgentType.OUTREACH: (AgentType.CONTENT, AgentType.SEGMENT_ANALYZER),
    AgentType.INSIGHT: (AgentType.PATTERN_MINER,),
}

# Typical single-attempt duration used for estimates
AGENT_DURATION_MS: Dict[AgentType, int] = {
    AgentType.CONTENT: 60000,
    AgentType.TREND: 45000,
    AgentType.SEO: 90000,
    AgentType.SOCIAL_POSTING: 30000,
    AgentType.EMAIL_MARKETING: 75000,
    AgentType.CUSTOMER_SUPPORT: 50000,
}
DEFAULT_AGENT_DURATION_MS = 60000

# Goal word -> template category
CATEGORY_KEYWORDS: Dict[str, ChainCategory] = {
    "content": ChainCategory.CONTENT_CREATION,
    "lead": ChainCategory.LEAD_GENERATION,
    "seo": ChainCategory.SEO_OPTIMIZATION,
    "social": ChainCategory.SOCIAL_MEDIA,
    "email": ChainCategory.EMAIL_MARKETING,
    "support": ChainCategory.CUSTOMER_SUPPORT,
}

DEFAULT_AGENT_CONFIG: Dict[AgentType, Dict[str, Any]] = {
    AgentType.TREND: {"analysis_type": "market_trends", "timeframe": "7d"},
    AgentType.CONTENT: {"content_type": "multi_format", "optimization": "engagement"},
    AgentType.SEO: {"focus": "optimization", "include_technical": True},
    AgentType.SOCIAL_POSTING: {"platforms": "auto_select", "engagement_focus": True},
    AgentType.EMAIL_MARKETING: {"campaign_type": "automated", "personalization": "medium"},
    AgentType.CUSTOMER_SUPPORT: {"mode": "proactive", "response_style": "helpful"},
}


def estimate_agent_cost(agent_type: AgentType) -> float:
    return AGENT_COST_PER_1K_TOKENS.get(agent_type, 0.0) * NOMINAL_TOKENS_PER_STEP / 1000


def topological_order(agents: Sequence[AgentType],
                      dependencies: Dict[AgentType, Sequence[AgentType]] = AGENT_DEPENDENCIES) -> List[AgentType]:
    """
    Order agents so each comes after the agents it depends on.

    Only dependencies present in ``agents`` are considered; the input order
    breaks ties.
    """
    present = set(agents)
    visited: set = set()
    in_progress: set = set()
    ordered: List[AgentType] = []

    def visit(agent: AgentType) -> None:
        if agent in visited or agent in in_progress:
            return
        in_progress.add(agent)
        for dependency in dependencies.get(agent, ()):
            if dependency in present:
                visit(dependency)
        in_progress.discard(agent)
        visited.add(agent)
        ordered.append(agent)

    for agent in agents:
        visit(agent)
    return ordered


def classify_complexity(definition: ChainDefinition) -> str:
    step_count = len(definition.steps)
    has_conditions = any(step.conditions for step in definition.steps)
    is_parallel = definition.execution_mode != ExecutionMode.SEQUENTIAL
    if step_count <= 3 and not has_conditions and not is_parallel:
        return "simple"
    if step_count <= 5:
        return "moderate"
    if step_count <= 8:
        return "complex"
    return "advanced"


class ChainRecommender:
    """Recommends a chain definition for a goal."""

    def __init__(self, templates: Optional[Dict[str, ChainTemplate]] = None):
        self.templates: Dict[str, ChainTemplate] = templates if templates is not None else get_builtin_chain_templates()

    def get_templates(self) -> List[ChainTemplate]:
        return list(self.templates.values())

    def recommend(
        self,
        goal: str,
        context: Optional[Dict[str, Any]] = None,
        preferences: Optional[RecommendationPreferences] = None,
    ) -> ChainRecommendation:
        """
        Recommend a chain for a goal.

        Args:
            goal: Free-text description of what the chain should achieve
            context: Extra data copied into every generated step's config
            preferences: Cost, size and agent constraints

        Returns:
            The best template when it scores above the direct-match threshold,
            otherwise a custom chain with the template matches as alternatives
        """
        request = RecommendationRequest(
            goal=goal, context=context or {}, preferences=preferences or RecommendationPreferences()
        )
        matches = sorted(
            (TemplateMatch(template_id=t.template_id, score=round(self.score_template(t, request), 4))
             for t in self.templates.values()),
            key=lambda m: m.score,
            reverse=True,
        )

        if matches and matches[0].score > DIRECT_TEMPLATE_THRESHOLD:
            best = self.templates[matches[0].template_id]
            logger.info(f"Recommending template '{best.template_id}' for goal '{goal}' (score {matches[0].score})")
            return ChainRecommendation(
                chain_definition=best.definition,
                confidence=matches[0].score,
                reasoning=[
                    f"Template '{best.definition.name}' matches the goal with "
                    f"{matches[0].score:.0%} confidence"
                ],
                template_id=best.template_id,
                estimated_cost=best.expected_cost,
                estimated_duration_ms=best.expected_duration_ms,
                complexity=classify_complexity(best.definition),
                alternatives=matches[1:1 + MAX_ALTERNATIVES],
            )

        definition, reasoning = self.build_custom_chain(request)
        logger.info(f"Recommending custom chain with {len(definition.steps)} steps for goal '{goal}'")
        return ChainRecommendation(
            chain_definition=definition,
            confidence=CUSTOM_CHAIN_CONFIDENCE,
            reasoning=reasoning,
            estimated_cost=round(sum(estimate_agent_cost(s.agent_type) for s in definition.steps), 6),
            estimated_duration_ms=self._estimate_duration_ms(definition),
            complexity=classify_complexity(definition),
            alternatives=matches[:MAX_ALTERNATIVES],
        )

    # Template scoring

    def score_template(self, template: ChainTemplate, request: RecommendationRequest) -> float:
        score = (
            self._goal_score(template, request.goal) * GOAL_WEIGHT
            + self._agent_score(template, request.preferences) * AGENT_WEIGHT
            + self._constraint_score(template, request.preferences) * CONSTRAINT_WEIGHT
            + template.success_rate * PERFORMANCE_WEIGHT
        )
        return min(1.0, max(0.0, score))

    @staticmethod
    def _goal_words(goal: str) -> List[str]:
        return [w for w in re.findall(r"[a-z0-9]+", goal.lower()) if w not in _STOPWORDS]

    def _goal_score(self, template: ChainTemplate, goal: str) -> float:
        definition = template.definition
        text = f"{definition.name} {definition.description or ''}".lower()
        keywords = {k.lower() for k in template.keywords}
        words = self._goal_words(goal)

        score = sum(0.2 for word in words if word in keywords or word in text)
        for word, category in CATEGORY_KEYWORDS.items():
            if word in words and definition.category == category:
                score += 0.4
                break
        return min(1.0, score)

    @staticmethod
    def _agent_score(template: ChainTemplate, preferences: RecommendationPreferences) -> float:
        if not preferences.required_agents:
            return 0.5
        template_agents = {step.agent_type for step in template.definition.steps}
        required = set(preferences.required_agents)
        return len(template_agents & required) / max(len(template_agents), len(required))

    @staticmethod
    def _constraint_score(template: ChainTemplate, preferences: RecommendationPreferences) -> float:
        score = 1.0
        if preferences.max_cost is not None and template.expected_cost > preferences.max_cost:
            score -= 0.3
        if preferences.max_steps is not None and len(template.definition.steps) > preferences.max_steps:
            score -= 0.3
        template_agents = {step.agent_type for step in template.definition.steps}
        if preferences.required_agents and not set(preferences.required_agents) <= template_agents:
            score -= 0.4
        return max(0.0, score)

    # Custom chains

    def analyze_goal(self, goal: str) -> List[AgentType]:
        """Agents a goal calls for, in keyword-table order."""
        text = f" {goal.lower()} "
        agents = [agent for agent, keywords in AGENT_KEYWORDS.items() if any(k in text for k in keywords)]
        return agents or [AgentType.CONTENT, AgentType.TREND]

    def build_custom_chain(self, request: RecommendationRequest) -> tuple[ChainDefinition, List[str]]:
        preferences = request.preferences
        agents = self.analyze_goal(request.goal)
        reasoning = [f"Goal analysis selected agents: {', '.join(a.value for a in agents)}"]

        for agent in preferences.required_agents:
            if agent not in agents:
                agents.append(agent)
                reasoning.append(f"Added required agent {agent.value}")

        if preferences.max_steps is not None and len(agents) > preferences.max_steps:
            required = set(preferences.required_agents)
            kept = [a for a in agents if a in required]
            kept += [a for a in agents if a not in required][:max(0, preferences.max_steps - len(kept))]
            agents = [a for a in agents if a in kept]
            reasoning.append(f"Trimmed to {len(agents)} agents to respect max_steps={preferences.max_steps}")

        ordered = topological_order(agents)
        steps: List[StepDefinition] = []
        for index, agent in enumerate(ordered):
            depends_on = {
                ordered.index(dependency)
                for dependency in AGENT_DEPENDENCIES.get(agent, ())
                if dependency in ordered and ordered.index(dependency) < index
            }
            config: Dict[str, Any] = {"goal": request.goal, **DEFAULT_AGENT_CONFIG.get(agent, {})}
            if request.context:
                config["context"] = request.context
            steps.append(StepDefinition(
                step_number=index,
                step_name=f"{agent.value.lower()} execution",
                agent_type=agent,
                agent_config=config,
                depends_on=depends_on,
            ))

        has_dependencies = any(step.depends_on for step in steps)
        parallel = preferences.prefer_parallel or not has_dependencies
        if parallel:
            reasoning.append("Independent steps run in parallel")

        definition = ChainDefinition(
            name=f"Custom Chain: {request.goal}"[:200],
            description=f"Generated chain for: {request.goal}",
            chain_type=ChainType.PARALLEL if parallel else ChainType.SEQUENTIAL,
            execution_mode=ExecutionMode.PARALLEL if parallel else ExecutionMode.SEQUENTIAL,
            steps=steps,
            success_criteria=SuccessCriteria(min_quality_score=0.7, max_error_rate=0.2),
            max_retries=3,
            budget_limit=preferences.max_cost,
        )
        return definition, reasoning

    @staticmethod
    def _estimate_duration_ms(definition: ChainDefinition) -> int:
        """Longest dependency path using typical agent durations."""
        finish: Dict[int, int] = {}
        for step in definition.ordered_steps:
            start = max((finish[d] for d in step.depends_on if d in finish), default=0)
            finish[step.step_number] = start + AGENT_DURATION_MS.get(step.agent_type, DEFAULT_AGENT_DURATION_MS)
        return max(finish.values(), default=0)
