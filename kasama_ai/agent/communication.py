"""Communication advisor: conflict resolution, style feedback and dialogue rehearsal."""
from __future__ import annotations

from kasama_ai.agent.pipeline import AgentOperation
from kasama_ai.agent.prompts import bullet_list, context_section, respond_with
from kasama_ai.core.contracts.communication import (
    CommunicationAssessment,
    ConflictResolutionAdvice,
    ConflictResolutionInput,
    DialogueCoaching,
    DialogueInput,
    QuickTips,
    StyleAssessmentInput,
)
from kasama_ai.core.contracts.requests import AgentType
from kasama_ai.core.exceptions import NotFoundError

SYSTEM_PROMPT = (
    "You are a communication coach grounded in nonviolent communication and emotionally focused "
    "approaches. You help people say hard things kindly and hear each other. Always answer with valid JSON."
)

QUICK_TIPS = {
    "argument": [
        "Pause and breathe before responding",
        "Listen to understand, not to win",
        'Use "I" statements to express your feelings',
        "Take a break if emotions escalate, and agree on when to return",
    ],
    "misunderstanding": [
        "Summarize what you heard before replying",
        "Ask: \"Help me understand what you meant\"",
        "Assume good intent until you know more",
        "Clarify your own meaning without defending it",
    ],
    "hurt_feelings": [
        "Acknowledge the hurt before explaining yourself",
        "Name the feeling you notice: \"It sounds like that really hurt\"",
        "Apologize for the impact, even if it wasn't your intent",
        "Ask what would help now",
    ],
    "boundary_setting": [
        "Be clear and brief about what you need",
        "State the boundary as your choice, not their fault",
        "Expect some pushback and stay calm",
        "Follow through consistently",
    ],
    "difficult_conversation": [
        "Clarify your main goal for the conversation",
        "Choose a private, comfortable setting",
        'Start with a positive intention: "I care about our relationship"',
        'Avoid absolute words like "always" or "never"',
    ],
}

TECHNIQUE_SHAPE = {
    "name": "<technique>",
    "description": "<description>",
    "example": "<example sentence>",
    "when_to_use": "<when>",
    "difficulty": "beginner|intermediate|advanced",
    "effectiveness": "<0-1>",
}

SCRIPT_SHAPE = {
    "situation": "<moment in the conversation>",
    "opening": "<what to say>",
    "key_phrases": ["<phrase>"],
    "phrases_to_avoid": ["<phrase>"],
    "tone": "<tone>",
}


def quick_tips(situation: str) -> QuickTips:
    key = situation.strip().lower().replace("-", "_").replace(" ", "_")
    if key not in QUICK_TIPS:
        raise NotFoundError(f"no quick tips for situation '{situation}'")
    return QuickTips(situation=key, tips=QUICK_TIPS[key])


def default_technique() -> dict:
    return {
        "name": "I-Statements",
        "description": "Express your feelings without blaming the other person",
        "example": "I feel worried when plans change last minute because I like to prepare.",
        "when_to_use": "When sharing something that bothers you",
        "difficulty": "beginner",
        "effectiveness": 0.8,
    }


def default_script() -> dict:
    return {
        "situation": "Opening the conversation",
        "opening": "I'd like to talk about something that matters to me, because I care about us.",
        "key_phrases": ["Help me understand your perspective", "I feel... when... because..."],
        "phrases_to_avoid": ["You always...", "You never...", "Just calm down"],
        "tone": "calm and warm",
    }


def build_conflict_prompt(data: ConflictResolutionInput, context: dict | None) -> str:
    comm = data.communication_context
    return (
        "Help the user resolve this conflict.\n\n"
        f"Conflict: {data.conflict_description}\n"
        f"Relationship: {data.relationship_type}\n"
        f"People involved:\n{bullet_list(data.parties_involved)}\n"
        f"Desired outcome: {data.desired_outcome or 'not stated'}\n"
        + (
            f"Urgency: {comm.urgency}\nEmotional state: {comm.emotional_state}\n"
            f"Previous attempts: {comm.previous_attempts}\nPreferred approach: {comm.preferred_approach}\n"
            f"Cultural considerations:\n{bullet_list(comm.cultural_considerations)}\n"
            if comm
            else ""
        )
        + context_section(context)
        + "\nGive one primary strategy, concrete techniques and word-for-word openings."
        + respond_with(
            {
                "strategy": {
                    "name": "<strategy>",
                    "description": "<description>",
                    "steps": ["<step>"],
                    "timeframe": "<timeframe>",
                    "success_rate": "<0-1>",
                    "prerequisites": ["<prerequisite>"],
                    "warnings": ["<warning>"],
                },
                "techniques": [TECHNIQUE_SHAPE],
                "script_suggestions": [SCRIPT_SHAPE],
                "alternative_approaches": [
                    {"name": "<name>", "description": "<description>", "when_to_use": "<when>", "pros": ["<pro>"], "cons": ["<con>"]}
                ],
                "follow_up_actions": ["<action>"],
                "success_predictors": ["<predictor>"],
            }
        )
    )


def build_style_prompt(data: StyleAssessmentInput, context: dict | None) -> str:
    return (
        "Assess the user's communication style.\n\n"
        f"Self description: {data.self_description or 'not provided'}\n"
        f"Recent conversations:\n{bullet_list(data.recent_conversations)}\n"
        f"Challenges:\n{bullet_list(data.challenges)}\n"
        f"{context_section(context)}"
        + respond_with(
            {
                "strength_areas": ["<strength>"],
                "improvement_areas": ["<area>"],
                "recommended_techniques": ["<technique>"],
                "personalized_tips": ["<tip>"],
                "practice_exercises": ["<exercise>"],
                "confidence_builders": ["<builder>"],
            }
        )
    )


def build_dialogue_prompt(data: DialogueInput, context: dict | None) -> str:
    return (
        "Rehearse an upcoming conversation with the user.\n\n"
        f"Scenario: {data.scenario}\n"
        f"Other person: {data.other_person or 'not described'}\n"
        f"User goals:\n{bullet_list(data.goals)}\n"
        f"{context_section(context)}"
        + respond_with(
            {
                "scenario": "<scenario>",
                "your_lines": [SCRIPT_SHAPE],
                "likely_responses": [
                    {"response": "<what they may say>", "how_to_handle": "<how>", "follow_up_options": ["<option>"]}
                ],
                "recovery_strategies": ["<strategy>"],
                "success_indicators": ["<indicator>"],
            }
        )
    )


def fallback_conflict(data: ConflictResolutionInput, context: dict | None) -> dict:
    return {
        "strategy": {
            "name": "Calm Communication Approach",
            "description": "Focus on understanding each other and finding common ground",
            "steps": [
                "Take time to calm down and prepare",
                "Start with a positive intention",
                "Listen to understand their perspective",
                "Agree on one concrete next step",
            ],
            "timeframe": "One conversation, may need follow-up",
            "success_rate": 0.7,
            "prerequisites": ["Both parties willing to talk"],
            "warnings": ["May need multiple conversations for complex issues"],
        },
        "techniques": [default_technique()],
        "script_suggestions": [default_script()],
        "alternative_approaches": [
            {
                "name": "Written Communication First",
                "description": "Sometimes writing out thoughts first can clarify the conversation",
                "when_to_use": "High emotions, complex issues or a history of arguments",
                "pros": ["Time to think", "Clear expression"],
                "cons": ["Less personal", "Might delay resolution"],
            }
        ],
        "follow_up_actions": [
            "Check in after a day or two",
            "Notice if agreements are being kept",
            "Be willing to adjust the approach if needed",
        ],
        "success_predictors": [
            "Both people feel heard",
            "Concrete agreements are made",
            "Emotional tension decreases",
        ],
    }


def fallback_style(data: StyleAssessmentInput, context: dict | None) -> dict:
    return {
        "strength_areas": ["Shows interest in improving communication", "Self-aware about communication patterns"],
        "improvement_areas": ["Practice active listening techniques", "Develop emotional regulation skills"],
        "recommended_techniques": [
            "I-statements for expressing feelings",
            "Paraphrasing to confirm understanding",
            "Taking breaks when emotions run high",
        ],
        "personalized_tips": [
            "Start with low-stakes conversations to practice",
            "Notice your emotional state before important conversations",
            "Ask questions to understand others' perspectives",
        ],
        "practice_exercises": [
            "Daily: Ask one clarifying question in conversations",
            "Weekly: Practice expressing appreciation to someone",
            "Monthly: Have a deeper conversation with someone you care about",
        ],
        "confidence_builders": [
            "Remember that everyone is learning to communicate better",
            "Focus on progress, not perfection",
            "Celebrate small improvements in your interactions",
        ],
    }


def fallback_dialogue(data: DialogueInput, context: dict | None) -> dict:
    return {
        "scenario": data.scenario,
        "your_lines": [default_script()],
        "likely_responses": [
            {
                "response": "They might initially be defensive",
                "how_to_handle": "Stay calm and acknowledge their feelings",
                "follow_up_options": [
                    "Ask questions to understand their perspective",
                    "Share your own feelings using I-statements",
                ],
            },
            {
                "response": "They might be more receptive than expected",
                "how_to_handle": "Express appreciation for their openness",
                "follow_up_options": ["Work together on solutions", "Make specific agreements"],
            },
        ],
        "recovery_strategies": [
            "If emotions escalate, suggest taking a break",
            "Return to your shared goals for the relationship",
            'Ask: "What would help us move forward?"',
        ],
        "success_indicators": [
            "Both people feel heard and understood",
            "You make progress toward your stated goals",
            "The conversation ends with a plan or agreement",
        ],
    }


OPERATIONS = [
    AgentOperation(
        agent_type=AgentType.COMMUNICATION_ADVISOR,
        name="resolve_conflict",
        input_model=ConflictResolutionInput,
        output_model=ConflictResolutionAdvice,
        build_prompt=build_conflict_prompt,
        fallback=fallback_conflict,
    ),
    AgentOperation(
        agent_type=AgentType.COMMUNICATION_ADVISOR,
        name="assess_style",
        input_model=StyleAssessmentInput,
        output_model=CommunicationAssessment,
        build_prompt=build_style_prompt,
        fallback=fallback_style,
    ),
    AgentOperation(
        agent_type=AgentType.COMMUNICATION_ADVISOR,
        name="coach_dialogue",
        input_model=DialogueInput,
        output_model=DialogueCoaching,
        build_prompt=build_dialogue_prompt,
        fallback=fallback_dialogue,
    ),
]
