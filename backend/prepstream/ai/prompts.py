"""
Prompts for interview content generation.
"""
from typing import Optional

from prepstream.ai.context import GenerationContext
from prepstream.models.content import AnalogyStyle, RevisionTopic

SYSTEM_PROMPT = """You are an expert interview preparation assistant. Generate comprehensive, detailed content for technical interview preparation.

ABSOLUTE REQUIREMENTS:
1. NEVER use placeholder text like "[content here]" or "[topic]"
2. NEVER use template markers or instructions as content
3. ALWAYS write complete, real, substantive content for every field
4. ALL code examples must be real, working, syntactically correct code
"""

STYLE_INSTRUCTIONS = {
    AnalogyStyle.PROFESSIONAL: (
        "Use technical, professional language. Include industry terminology "
        "and precise definitions."
    ),
    AnalogyStyle.CONSTRUCTION: (
        "Use house-building analogies throughout: foundation = core architecture, "
        "plumbing = data flow, electrical = events, blueprints = design patterns."
    ),
    AnalogyStyle.SIMPLE: (
        "Use simple everyday language. Avoid jargon. Explain as if to someone "
        "new to programming."
    ),
}

_LANGUAGE_HINTS = [
    ("python", "python"),
    ("typescript", "typescript"),
    ("golang", "go"),
    ("rust", "rust"),
    ("c++", "cpp"),
    ("c#", "csharp"),
]


def infer_seniority(job_title: str) -> str:
    title = job_title.lower()
    if any(word in title for word in ("principal", "staff", "lead", "architect")):
        return "advanced"
    if "senior" in title or "sr." in title:
        return "advanced"
    if any(word in title for word in ("junior", "intern", "graduate", "jr.")):
        return "beginner"
    return "intermediate"


def infer_language(job_description: str) -> str:
    """Pick the code example language from the job description."""
    text = job_description.lower()
    for needle, language in _LANGUAGE_HINTS:
        if needle in text:
            return language
    if "java" in text and "javascript" not in text:
        return "java"
    return "javascript"


def _role_header(ctx: GenerationContext) -> str:
    return f"""**Job Title:** {ctx.job_title}
**Company:** {ctx.company}

**Job Description:**
{ctx.job_description}

**Candidate Resume:**
{ctx.resume_text}"""


def _existing_note(ctx: GenerationContext, noun: str) -> str:
    if not ctx.existing_content:
        return ""
    ids = "\n".join(ctx.existing_content)
    return f"\n\nIMPORTANT - Existing {noun} to AVOID duplicating (ids):\n{ids}"


def _instructions_note(ctx: GenerationContext) -> str:
    if not ctx.custom_instructions:
        return ""
    return f"\n\nAdditional instructions: {ctx.custom_instructions}"


def build_opening_brief_prompt(ctx: GenerationContext) -> str:
    return f"""Generate a detailed opening brief for an interview preparation plan.

{_role_header(ctx)}

Cover: how the candidate's experience matches the role, key skills to
highlight, gaps to address, company research pointers and an estimated
preparation time. Provide an experience match percentage (0-100).{_instructions_note(ctx)}"""


def build_topics_prompt(ctx: GenerationContext, count: int) -> str:
    return f"""Generate {count} detailed interview preparation topics.

{_role_header(ctx)}{_existing_note(ctx, "topics")}

For each topic provide: id (unique, "topic_" followed by 8 random characters),
title, confidence (low/medium/high), reason (2 sentences), difficulty
"{infer_seniority(ctx.job_title)}", estimated_minutes (30-60), prerequisites,
skill_gaps, follow_up_questions and markdown content with a real
{infer_language(ctx.job_description)} code example.{_instructions_note(ctx)}"""


def build_mcqs_prompt(ctx: GenerationContext, count: int) -> str:
    return f"""Generate {count} multiple choice interview questions.

{_role_header(ctx)}{_existing_note(ctx, "questions")}

For each question provide: id (unique, "mcq_" followed by 8 random characters),
question, exactly 4 options, the correct answer (one of the options) and an
explanation.{_instructions_note(ctx)}"""


def build_rapid_fire_prompt(ctx: GenerationContext, count: int) -> str:
    return f"""Generate {count} rapid-fire interview questions with short answers.

{_role_header(ctx)}{_existing_note(ctx, "questions")}

For each question provide: id (unique, "rf_" followed by 8 random characters),
question and a one or two sentence answer.{_instructions_note(ctx)}"""


def build_topic_rewrite_prompt(
    ctx: GenerationContext,
    topic: RevisionTopic,
    style: AnalogyStyle,
    level: Optional[str] = None,
) -> str:
    return f"""Rewrite this interview topic explanation in a {style.value} style.

**Topic:** {topic.title}
**Why it matters:** {topic.reason}
**Level:** {level or topic.difficulty or infer_seniority(ctx.job_title)}

**Style Instructions:** {STYLE_INSTRUCTIONS[style]}

Write complete markdown content with Overview, Key Concepts, How It Works and
a real {infer_language(ctx.job_description)} code example.{_instructions_note(ctx)}"""
