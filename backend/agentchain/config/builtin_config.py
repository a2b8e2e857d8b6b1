"""
Built-in chain templates.

Single source of truth for the templates offered by the recommender and
listed by the templates endpoint. Kept as plain data; callers get validated
ChainTemplate copies through get_builtin_chain_templates().
"""

import copy
from typing import Any, Dict

from agentchain.models.recommendation_models import ChainTemplate


# ==============================================================================
# BUILT-IN CHAIN TEMPLATES
# ==============================================================================

# Format: "template-id" -> {"definition": {...}, "keywords": [...], expected_* figures}
BUILTIN_CHAIN_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "viral_content": {
        "definition": {
            "name": "Viral Content Creation",
            "description": "Create viral content by analyzing trends and optimizing for engagement",
            "chain_type": "sequential",
            "execution_mode": "sequential",
            "category": "content_creation",
            "tags": ["content", "social", "trends"],
            "steps": [
                {
                    "step_number": 0,
                    "step_name": "Trend Analysis",
                    "agent_type": "TREND",
                    "agent_config": {"focus": "viral_content", "timeframe": "24h"},
                },
                {
                    "step_number": 1,
                    "step_name": "Content Generation",
                    "agent_type": "CONTENT",
                    "depends_on": [0],
                    "agent_config": {"style": "viral", "optimize_for": "engagement"},
                },
                {
                    "step_number": 2,
                    "step_name": "Social Optimization",
                    "agent_type": "SOCIAL_POSTING",
                    "depends_on": [1],
                    "agent_config": {"platforms": ["instagram", "tiktok", "twitter"]},
                },
            ],
            "success_criteria": {"min_steps_completed": 3, "min_quality_score": 0.7},
        },
        "keywords": ["viral", "content", "social", "engagement", "trend", "post", "share"],
        "expected_cost": 0.15,
        "expected_duration_ms": 180000,
        "success_rate": 0.85,
    },
    "lead_nurture": {
        "definition": {
            "name": "Lead Nurturing Campaign",
            "description": "Comprehensive lead nurturing with personalized content and email sequences",
            "chain_type": "sequential",
            "execution_mode": "sequential",
            "category": "lead_generation",
            "tags": ["leads", "email", "nurture"],
            "steps": [
                {
                    "step_number": 0,
                    "step_name": "Market Research",
                    "agent_type": "TREND",
                    "agent_config": {"focus": "lead_behavior", "analysis_depth": "deep"},
                },
                {
                    "step_number": 1,
                    "step_name": "Educational Content",
                    "agent_type": "CONTENT",
                    "depends_on": [0],
                    "agent_config": {"type": "educational", "format": "multi"},
                },
                {
                    "step_number": 2,
                    "step_name": "Email Sequence",
                    "agent_type": "EMAIL_MARKETING",
                    "depends_on": [1],
                    "agent_config": {"sequence_type": "nurture", "personalization": "high"},
                },
                {
                    "step_number": 3,
                    "step_name": "Follow-up Support",
                    "agent_type": "CUSTOMER_SUPPORT",
                    "depends_on": [2],
                    "agent_config": {"mode": "proactive", "channels": ["email", "chat"]},
                },
            ],
            "success_criteria": {"min_steps_completed": 4, "min_quality_score": 0.8},
        },
        "keywords": ["lead", "nurture", "email", "campaign", "newsletter", "conversion", "follow-up"],
        "expected_cost": 0.25,
        "expected_duration_ms": 300000,
        "success_rate": 0.78,
    },
    "seo_optimization": {
        "definition": {
            "name": "SEO Optimization Campaign",
            "description": "Complete SEO optimization with content and technical improvements",
            "chain_type": "parallel",
            "execution_mode": "parallel",
            "category": "seo_optimization",
            "tags": ["seo", "search", "content"],
            "steps": [
                {
                    "step_number": 0,
                    "step_name": "Keyword Research",
                    "agent_type": "SEO",
                    "agent_config": {"task": "keyword_research", "depth": "comprehensive"},
                },
                {
                    "step_number": 1,
                    "step_name": "Content Optimization",
                    "agent_type": "CONTENT",
                    "depends_on": [0],
                    "agent_config": {"optimize_for": "seo", "keyword_integration": "natural"},
                },
                {
                    "step_number": 2,
                    "step_name": "Technical SEO",
                    "agent_type": "SEO",
                    "agent_config": {"task": "technical_audit", "fix_issues": True},
                },
            ],
            "success_criteria": {"min_steps_completed": 3, "min_quality_score": 0.75},
        },
        "keywords": ["seo", "search", "ranking", "keywords", "optimize", "organic", "traffic"],
        "expected_cost": 0.18,
        "expected_duration_ms": 240000,
        "success_rate": 0.82,
    },
}


def get_builtin_chain_templates() -> Dict[str, ChainTemplate]:
    """Validated copies of the built-in templates keyed by template id."""
    return {
        template_id: ChainTemplate(template_id=template_id, **copy.deepcopy(raw))
        for template_id, raw in BUILTIN_CHAIN_TEMPLATES.items()
    }
