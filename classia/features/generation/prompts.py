"""Prompt templates for exam generation.

The completion service must answer with a single JSON object matching
`classia.models.exam.ExamContent`. Prompts are written in Portuguese because
exams are produced for Brazilian classrooms.
"""

from typing import Optional

from classia.models.exam import ExamType


SYSTEM_PROMPT = (
    "Você é um assistente especializado em criar provas educacionais. "
    "Sempre responda com um único objeto JSON válido, sem texto adicional."
)

TYPE_DESCRIPTIONS = {
    ExamType.MULTIPLE_CHOICE: "múltipla escolha com 4 alternativas (A, B, C, D)",
    ExamType.TRUE_FALSE: "verdadeiro ou falso",
    ExamType.ESSAY: "dissertativas com resposta discursiva",
    ExamType.MIXED: "mistas (múltipla escolha, verdadeiro/falso e dissertativas)",
}

OUTPUT_SCHEMA = """FORMATO DE RESPOSTA (JSON):
{
  "title": "Prova de [tema]",
  "questions": [
    {
      "number": 1,
      "prompt": "enunciado da pergunta",
      "type": "multiple_choice",
      "choices": ["A) ...", "B) ...", "C) ...", "D) ..."],
      "correctAnswer": "A"
    },
    {"number": 2, "prompt": "...", "type": "true_false", "correctAnswer": "V"},
    {"number": 3, "prompt": "...", "type": "essay"}
  ],
  "answerKey": {
    "1": "A",
    "2": "V",
    "3": "Resposta dissertativa esperada..."
  }
}"""

TYPE_RULES = """INSTRUÇÕES:
- "type" é sempre um de: multiple_choice, true_false, essay
- multiple_choice: exatamente 4 alternativas (A, B, C, D), apenas uma correta, "correctAnswer" é a letra
- true_false: sem alternativas, "correctAnswer" é V (Verdadeiro) ou F (Falso)
- essay: pergunta aberta, sem alternativas
- "answerKey" tem uma entrada para cada número de questão, e para multiple_choice e true_false repete "correctAnswer"
- Crie questões de qualidade acadêmica"""


def build_freeform_prompt(prompt: str) -> str:
    return f"{prompt.strip()}\n\n{OUTPUT_SCHEMA}\n\n{TYPE_RULES}\n\nRetorne APENAS o JSON válido, sem texto adicional."


def build_structured_prompt(theme: str, grade: str, question_count: int, exam_type: ExamType) -> str:
    type_rule = ""
    if exam_type == ExamType.MIXED:
        type_rule = "- Combine os tipos de forma equilibrada\n"
    else:
        type_rule = f"- Todas as questões devem ter \"type\": \"{exam_type.value}\"\n"

    return (
        f"Gere uma prova sobre \"{theme.strip()}\" para \"{grade.strip()}\" com exatamente "
        f"{question_count} questões do tipo {TYPE_DESCRIPTIONS[exam_type]}.\n\n"
        f"{TYPE_RULES}\n{type_rule}\n"
        f"{OUTPUT_SCHEMA}\n\n"
        "Crie questões apropriadas para o nível educacional solicitado. "
        "Retorne APENAS o JSON válido, sem texto adicional."
    )


def build_prompt(
    *,
    prompt: Optional[str] = None,
    theme: Optional[str] = None,
    grade: Optional[str] = None,
    question_count: Optional[int] = None,
    exam_type: Optional[ExamType] = None,
) -> str:
    if prompt:
        return build_freeform_prompt(prompt)
    return build_structured_prompt(theme, grade, question_count, exam_type)
