"""
Prompt construction

Builds the system and user instructions for one question. Output depends only
on the inputs, so the same question, context and analysis always give the same
text.
"""

from dataclasses import dataclass

from exam_rag.analysis import QuestionAnalysis


ROMAN_NUMERALS = ("I", "II", "III", "IV")

NEGATIVE_WARNING = (
    "⚠️ This question uses negative logic asking for what is NOT correct. "
    "Identify which statements are FALSE or which option contradicts the context."
)
ALL_OF_ABOVE_INSTRUCTION = (
    'For "All of the above" options, verify all statements carefully before selecting this option.'
)
ALL_OF_ABOVE_NOTE = (
    'Note: One of the options is "All of the above" or similar. '
    "Verify all statements carefully before selecting this option."
)
REASONING_REQUEST = "Please show your reasoning step by step, and then provide your final answer."
VERIFICATION_SYSTEM_PROMPT = "You are a verification system that provides a single letter answer."

_SYSTEM_HEADER = [
    "Your task is to select the most complete correct answer to a multiple-choice question "
    "based ONLY on the provided context.",
    "CRITICAL INSTRUCTIONS:",
    '1. Read the question carefully - pay special attention to negative wording like '
    '"not," "except," "false," "incorrect".',
    "2. Analyze EACH statement or option individually against the context.",
    "3. For questions with statements labeled I, II, III, etc., evaluate each statement "
    "separately before considering combinations.",
    "4. Only use information explicitly stated or directly implied in the context - "
    "never use external knowledge.",
    "5. Choose the most complete correct answer after evaluating all options.",
]
_SYSTEM_FOOTER = (
    "You MUST answer with ONLY a single uppercase letter (A, B, C, or D) - no explanation or reasoning."
)


@dataclass(frozen=True)
class PromptPlan:
    system: str
    user: str

    def messages(self) -> list[dict]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def build_system_prompt(analysis: QuestionAnalysis) -> str:
    lines = list(_SYSTEM_HEADER)
    if analysis.has_all_of_above:
        lines.append(ALL_OF_ABOVE_INSTRUCTION)
    if analysis.is_negative:
        lines.append(NEGATIVE_WARNING)
    lines.append(_SYSTEM_FOOTER)
    return "\n".join(lines)


def _statement_steps(statements: tuple[str, ...]) -> str:
    blocks = []
    for numeral, statement in zip(ROMAN_NUMERALS, statements):
        blocks.append(
            f'- Statement {numeral}: "{statement}"\n'
            f"  [Quote relevant context]\n"
            f"  Therefore, Statement {numeral} is [TRUE/FALSE]"
        )
    return "\n\n".join(blocks)


def _option_steps(analysis: QuestionAnalysis) -> str:
    return "\n\n".join(
        f'- Option {option.letter}: "{option.text}"\n'
        f"  [Quote relevant context]\n"
        f"  Therefore, Option {option.letter} is [CORRECT/INCORRECT]"
        for option in analysis.options
    )


def build_user_prompt(question_text: str, context: str, analysis: QuestionAnalysis) -> str:
    """
    Build the user instruction: warnings, context, question and the four-step
    reasoning scaffold.

    Step 2 walks the statements for multi-statement questions (only I to IV are
    addressable) and the options otherwise. Step 3 asks for the TRUE/FALSE
    statement combination; the polarity flips for negatively phrased questions.
    """
    polarity = "FALSE" if analysis.is_negative else "TRUE"

    parts = []
    if analysis.is_negative:
        parts.append(f"{NEGATIVE_WARNING}\n\n")
    parts.append(f"Context:\n{context}\n\nQuestion:\n{question_text}\n\n")
    if analysis.has_all_of_above:
        parts.append(f"{ALL_OF_ABOVE_NOTE}\n\n")

    # Multi-statement questions whose statements could not be parsed fall back
    # to the option walk.
    if analysis.has_multiple_statements and analysis.statements:
        evaluations = _statement_steps(analysis.statements)
    else:
        evaluations = _option_steps(analysis)

    synthesis = ""
    if analysis.has_multiple_statements:
        synthesis = (
            f"- Which statements are {polarity}? List them.\n"
            f"- Which answer option correctly matches these {polarity} statements?"
        )

    target = "what is NOT correct" if analysis.is_negative else "what IS correct"
    parts.append(
        "Step 1: Identify the key question and type of logic required.\n"
        "Step 2: Evaluate each statement or option individually:\n"
        f"{evaluations}\n"
        "\n"
        "Step 3: Determine the correct answer based on the evaluation above.\n"
        f"{synthesis}\n"
        "\n"
        "Step 4: Verify your answer:\n"
        f"- Double-check that your selected option matches the question's logic ({target}).\n"
        "\n"
        "IMPORTANT: Your final answer MUST be ONLY a single letter A, B, C, or D without any explanation.\n"
        "\n"
        "Your final answer: "
    )
    return "".join(parts)


def build_prompt(question_text: str, context: str, analysis: QuestionAnalysis) -> PromptPlan:
    return PromptPlan(
        system=build_system_prompt(analysis),
        user=build_user_prompt(question_text, context, analysis),
    )


def build_reasoning_messages(plan: PromptPlan) -> list[dict]:
    """Stage 1 of the verification protocol: same prompt, reasoning requested."""
    return [
        {"role": "system", "content": plan.system},
        {"role": "user", "content": f"{plan.user}\n\n{REASONING_REQUEST}"},
    ]


def build_verification_messages(preliminary: str, question_text: str) -> list[dict]:
    """Stage 2 of the verification protocol: confirm a single letter."""
    user = (
        "I've analyzed this question in detail. "
        f"My analysis points to answer {preliminary or '?'}.\n"
        "\n"
        f'Question: "{question_text}"\n'
        "\n"
        "Based on the analysis, what is the final answer (ONLY a single letter A, B, C, or D)?"
    )
    return [
        {"role": "system", "content": VERIFICATION_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]
