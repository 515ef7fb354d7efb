"""Prompt templates for the tutor.

1. build_system_prompt - tutor persona plus session context, one per turn
2. Generator prompts - concept primer, Socratic question, study plan,
   flashcards; each asks for a single JSON object
3. build_retry_prompt - re-prompt after a parse failure
"""

from typing import Optional, Sequence

TUTOR_PERSONA = """You are a Socratic tutor helping a developer understand an unfamiliar codebase.

How you teach:
1. Guide with questions rather than handing over answers
2. Build on prerequisite knowledge step by step
3. Use the repository's actual code as teaching material
4. Adapt difficulty to the learner's responses
5. Normalize struggle and acknowledge progress

Use the tools when you need facts about the repository: get_repo_map for its
structure, search_code to find real code before you talk about it. Ask one
question at a time. Offer at most two hints when the learner is stuck.

Your goal: help the learner build a mental model of the repository that lets
them contribute with confidence."""

JSON_ONLY = "Respond with a single JSON object and nothing else. Do not wrap it in markdown."


def build_system_prompt(
    repo_name: str,
    goal: str,
    struggles: Sequence[str],
    primer: Optional[str] = None,
) -> str:
    """System instruction for one tutor turn."""
    parts = [
        TUTOR_PERSONA,
        "",
        "## SESSION",
        f"- Repository: {repo_name}",
        f"- Learner goal: {goal or 'not stated'}",
        f"- Concepts the learner struggled with: {', '.join(struggles) if struggles else 'none yet'}",
    ]
    if primer:
        parts += ["", "## REPOSITORY PRIMER", primer]
    return "\n".join(parts)


def build_concept_primer_prompt(concept: str, repo_name: str, context: str = "") -> str:
    context_section = f"\n## CONTEXT\n{context}\n" if context else ""
    return f"""Write a short primer on the concept "{concept}" as it applies to the repository {repo_name}.
{context_section}
Return JSON of the form:
{{"primer": "<3-6 sentence explanation>", "key_points": ["<point>", "..."]}}

{JSON_ONLY}"""


def build_socratic_question_prompt(
    context: str,
    difficulty: int,
    previous_answers: Sequence[str] = (),
) -> str:
    answers = "\n".join(f"- {a}" for a in previous_answers) or "- (none)"
    return f"""Write one Socratic question that helps a learner reason about this code or concept.

## CONTEXT
{context}

## DIFFICULTY
{difficulty} on a scale of 1 (gentle) to 5 (demanding)

## LEARNER'S PREVIOUS ANSWERS
{answers}

Return JSON of the form:
{{"question": "<question>", "hints": ["<hint 1>", "<hint 2>"], "difficulty": {difficulty}}}

{JSON_ONLY}"""


def build_study_plan_prompt(
    struggles: Sequence[str],
    repo_context: str,
    duration_minutes: int,
) -> str:
    topics = "\n".join(f"- {s}" for s in struggles) or "- general orientation in the codebase"
    return f"""Create a focused study plan for a developer learning {repo_context}.

## TOPICS THE LEARNER STRUGGLED WITH
{topics}

The whole plan must take {duration_minutes} minutes. Section durations must add up to {duration_minutes}.

Return JSON of the form:
{{"title": "<plan title>", "duration_minutes": {duration_minutes}, "sections": [
  {{"order": 1, "title": "<section>", "duration_minutes": <int>,
    "objectives": ["<objective>"], "resources": [{{"title": "<title>", "url": "<url or file path>"}}]}}
]}}

{JSON_ONLY}"""


def build_flashcards_prompt(concepts: Sequence[str], repo_name: str, count: int) -> str:
    topics = ", ".join(concepts) if concepts else "the repository's core abstractions"
    return f"""Create exactly {count} flashcards for spaced repetition about {topics} in the repository {repo_name}.

Return JSON of the form:
{{"flashcards": [
  {{"front": "<question>", "back": "<answer>", "concept": "<concept>", "difficulty": <1-5>, "source_file": "<path or null>"}}
]}}

The "flashcards" list must contain exactly {count} items.

{JSON_ONLY}"""


def build_retry_prompt(original_prompt: str, error: str) -> str:
    """Re-prompt with the parse error appended."""
    return f"""{original_prompt}

Your previous answer could not be used: {error}
Return only the JSON object, exactly in the requested shape."""
