import base64
import json
import logging
from typing import Any, Optional

from pydantic import ValidationError
from pydantic_ai import Agent, BinaryContent
from pydantic_ai.models import Model

from app.Settings import DEFAULT_MODEL
from app.ai.Credentials import CredentialContext, handle_credential_error
from app.models.Errors import (
    CredentialMissingError,
    CredentialRequiredNoPickerError,
    EmptyResponseError,
    InvalidEnumError,
    InvalidIssueError,
    InvalidRecommendationError,
    InvalidTopLevelError,
    MalformedJSONError,
)
from app.models.Response import (
    FITZPATRICK_VALUES,
    ISSUE_KEYS,
    RECOMMENDATION_KEYS,
    SKIN_TYPE_VALUES,
    AnalysisResult,
)

logger = logging.getLogger('uvicorn')


def _issue_schema(description: str, areas_hint: str) -> dict:
    return {
        "type": "object",
        "properties": {
            "score": {"type": "number", "description": description},
            "severity": {"type": "string", "description": 'Severity description (e.g., "low", "medium", "high").'},
            "areas": {"type": "array", "items": {"type": "string"}, "description": areas_hint},
        },
        "required": ["score", "severity"],
    }


# Esquema enviado ao modelo apenas como texto do prompt
SKIN_ANALYSIS_SCHEMA = {
    "type": "object",
    "properties": {
        "overallScore": {"type": "number", "description": "Overall skin health score from 0-100, where 100 is excellent."},
        "skinType": {"type": "string", "enum": SKIN_TYPE_VALUES},
        "fitzpatrickScale": {"type": "string", "enum": FITZPATRICK_VALUES},
        "issues": {
            "type": "object",
            "properties": {
                "acne": _issue_schema("Score for acne severity (0-100).", "Optional areas affected by acne."),
                "wrinkles": _issue_schema("Score for wrinkles severity (0-100).", "Optional areas affected by wrinkles."),
                "hyperpigmentation": _issue_schema(
                    "Score for hyperpigmentation severity (0-100).", "Optional areas affected by hyperpigmentation."
                ),
                "pores": _issue_schema("Score for pore visibility (0-100).", "Optional areas with visible pores."),
                "redness": _issue_schema("Score for redness severity (0-100).", "Optional areas with redness."),
                "texture": _issue_schema(
                    "Score for skin texture (0-100, higher is smoother).", "Optional areas for texture assessment."
                ),
                "hydration": _issue_schema(
                    "Score for skin hydration (0-100, higher is more hydrated).", "Optional areas for hydration assessment."
                ),
                "oiliness": _issue_schema(
                    "Score for skin oiliness (0-100, higher is more oily).", "Optional areas for oiliness assessment."
                ),
                "darkCircles": _issue_schema("Score for dark circles (0-100).", "Optional areas for dark circles assessment."),
                "symmetry": {
                    "type": "object",
                    "properties": {
                        "score": {"type": "number", "description": "Score for facial symmetry (0-100, higher is more symmetrical)."},
                        "description": {"type": "string", "description": "A brief description of facial symmetry."},
                    },
                    "required": ["score", "description"],
                },
            },
            "required": ISSUE_KEYS,
        },
        "recommendations": {
            "type": "object",
            "properties": {
                "morningRoutine": {"type": "array", "items": {"type": "string"}, "description": "Steps for a morning skincare routine."},
                "eveningRoutine": {"type": "array", "items": {"type": "string"}, "description": "Steps for an evening skincare routine."},
                "weeklyTreatments": {"type": "array", "items": {"type": "string"}, "description": "Suggestions for weekly treatments."},
                "lifestyleTips": {"type": "array", "items": {"type": "string"}, "description": "General lifestyle advice for skin health."},
            },
            "required": RECOMMENDATION_KEYS,
        },
        "explainability": {"type": "string", "description": "A concise explanation of the overall findings and reasoning."},
    },
    "required": ["overallScore", "skinType", "fitzpatrickScale", "issues", "recommendations", "explainability"],
}

BASE_PROMPT = """
Analyze the facial skin in this image for the following attributes: overall skin health score (0-100, where 100 is excellent), skin type (oily, dry, combination, normal), Fitzpatrick scale (I-VI), presence and severity of acne, wrinkles, hyperpigmentation, pores, redness, texture (smoothness), hydration, oiliness, dark circles, and facial symmetry. Provide specific areas if possible.

Respond strictly in JSON format according to the following JSON schema:
"""


def build_prompt() -> str:
    return BASE_PROMPT + json.dumps(SKIN_ANALYSIS_SCHEMA, indent=2)


# Saída em texto livre: a validação do JSON é feita manualmente
skin_analysis_agent = Agent[None, str](output_type=str)


def build_gemini_model(api_key: str, model_name: str = DEFAULT_MODEL) -> Model:
    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    return GoogleModel(model_name, provider=GoogleProvider(api_key=api_key))


def clean_model_text(text: Optional[str]) -> str:
    """
    Remove espaços e um único bloco de código markdown (```json ... ```).

    Raises:
        EmptyResponseError: se não sobrar conteúdo antes ou depois da limpeza
    """
    cleaned = (text or "").strip()
    if not cleaned:
        raise EmptyResponseError("AI response was empty. Cannot parse JSON.")

    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```"):]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-len("```")]
    cleaned = cleaned.strip()

    if not cleaned:
        raise EmptyResponseError(
            "AI response contained only markdown fences or was empty after cleaning. Cannot parse JSON."
        )
    return cleaned


def parse_model_json(text: Optional[str]) -> Any:
    cleaned = clean_model_text(text)
    try:
        return json.loads(cleaned)
    except ValueError as e:
        logger.error(f"[ANÁLISE] Falha ao interpretar JSON: {e}")
        raise MalformedJSONError(str(e), cleaned) from e


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def validate_analysis_payload(payload: Any) -> AnalysisResult:
    """
    Valida campo a campo o JSON devolvido pelo modelo.

    A ordem das verificações define qual erro é lançado: campos de topo,
    enums, issues e por fim recomendações.
    """
    if (
        not isinstance(payload, dict)
        or not _is_number(payload.get("overallScore"))
        or not isinstance(payload.get("skinType"), str)
        or not isinstance(payload.get("fitzpatrickScale"), str)
        or not isinstance(payload.get("issues"), dict)
        or not isinstance(payload.get("recommendations"), dict)
        or not isinstance(payload.get("explainability"), str)
        or not payload.get("explainability")
    ):
        raise InvalidTopLevelError(
            "AI response is missing critical data or is malformed after parsing. "
            "Ensure all top-level properties (overallScore, skinType, fitzpatrickScale, "
            "issues, recommendations, explainability) are present and correctly typed."
        )

    if payload["skinType"] not in SKIN_TYPE_VALUES:
        raise InvalidEnumError("skinType", payload["skinType"])
    if payload["fitzpatrickScale"] not in FITZPATRICK_VALUES:
        raise InvalidEnumError("fitzpatrickScale", payload["fitzpatrickScale"])

    issues = payload["issues"]
    for key in ISSUE_KEYS:
        issue = issues.get(key)
        if not isinstance(issue, dict) or not _is_number(issue.get("score")):
            raise InvalidIssueError(key)

        if key == "symmetry":
            if not isinstance(issue.get("description"), str):
                raise InvalidIssueError(key, "AI response symmetry issue is missing description or is malformed.")
            continue

        if not isinstance(issue.get("severity"), str):
            raise InvalidIssueError(key, f"AI response issue \"{key}\" is missing severity or is malformed.")
        areas = issue.get("areas")
        if areas is not None and not _is_string_list(areas):
            raise InvalidIssueError(key, f"AI response issue \"{key}\" has malformed areas (expected array of strings).")

    recommendations = payload["recommendations"]
    for key in RECOMMENDATION_KEYS:
        if not _is_string_list(recommendations.get(key)):
            raise InvalidRecommendationError(key)

    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as e:
        raise InvalidTopLevelError(f"AI response could not be converted into an analysis result: {e}") from e


def parse_analysis_text(text: Optional[str]) -> AnalysisResult:
    return validate_analysis_payload(parse_model_json(text))


async def analyze_skin_image(
    image_base64: str,
    mime_type: str,
    credentials: CredentialContext,
    model_name: str = DEFAULT_MODEL,
    model: Optional[Model] = None,
) -> AnalysisResult:
    """
    Analisa a pele em uma imagem base64 usando o Gemini.

    Args:
        image_base64: Imagem em base64, sem o prefixo de data URL
        mime_type: Tipo MIME da imagem (ex.: 'image/jpeg')
        credentials: Estado da seleção de credencial
        model_name: Nome do modelo Gemini
        model: Modelo já construído (substitui o Gemini, usado em testes)

    Returns:
        AnalysisResult: Resultado validado, sem nenhuma normalização

    Raises:
        CredentialMissingError: se não houver chave disponível
        AnalysisResponseError: se a resposta do modelo for inválida
    """
    api_key = credentials.resolve_api_key()
    if not api_key:
        if not credentials.picker_available:
            raise CredentialRequiredNoPickerError()
        raise CredentialMissingError("API_KEY is not defined. Please select an API key to proceed.")

    logger.info(f"[ANÁLISE] Iniciando - Modelo: {model_name}, Tipo: {mime_type}")

    try:
        image_bytes = base64.b64decode(image_base64)
        result = await skin_analysis_agent.run(
            [build_prompt(), BinaryContent(data=image_bytes, media_type=mime_type)],
            model=model or build_gemini_model(api_key, model_name),
        )
        analysis = parse_analysis_text(result.output)
        logger.info(f"[ANÁLISE] Concluída com sucesso! Tipo de pele: {analysis.skin_type.value}")
        return analysis
    except Exception as e:
        logger.error(f"[ERRO] Falha na análise da imagem: {e}")
        await handle_credential_error(credentials, e)
