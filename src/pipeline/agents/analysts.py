# src/pipeline/agents/analysts.py — v1
"""The four dimension analysts run by the ScriptAnalyzer fan-out."""

from __future__ import annotations

from scriptconveyor.pipeline.agents.base_analyst import BaseAnalyst


class HookAnalyst(BaseAnalyst):
    dimension = "hook"
    system_prompt = (
        "You are a hook analyst for short-form vertical video. You judge only "
        "the first seconds: do they stop the scroll? Respond only with valid JSON."
    )
    criteria = (
        "- Pattern interrupt in the first 3 seconds\n"
        "- Curiosity gap or open loop\n"
        "- Concrete number, stake or surprise\n"
        "- No slow intro or greeting"
    )


class StructureAnalyst(BaseAnalyst):
    dimension = "structure"
    system_prompt = (
        "You are a structure analyst for short-form vertical video. You judge "
        "pacing and flow from hook to call to action. Respond only with valid JSON."
    )
    criteria = (
        "- Clear hook → context → main → twist → cta progression\n"
        "- Scene lengths fit the total duration\n"
        "- Every scene earns its place; no repetition\n"
        "- Logical transitions"
    )


class EmotionalAnalyst(BaseAnalyst):
    dimension = "emotional"
    system_prompt = (
        "You are an emotional analyst for short-form vertical video. You judge "
        "the emotional arc and relatability. Respond only with valid JSON."
    )
    criteria = (
        "- Emotional trigger (surprise, outrage, awe, empathy)\n"
        "- Relatability to the target audience\n"
        "- Tension and release\n"
        "- Conversational, spoken tone"
    )


class CTAAnalyst(BaseAnalyst):
    dimension = "cta"
    system_prompt = (
        "You are a call-to-action analyst for short-form vertical video. You "
        "judge the ending and the action it asks for. Respond only with valid JSON."
    )
    criteria = (
        "- One clear, specific action\n"
        "- Follows naturally from the content\n"
        "- Invites comments or shares\n"
        "- Lands within the last 5 seconds"
    )


def default_analysts() -> list[BaseAnalyst]:
    return [HookAnalyst(), StructureAnalyst(), EmotionalAnalyst(), CTAAnalyst()]
