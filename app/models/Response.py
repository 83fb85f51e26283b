from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt

# Valores numéricos passam sem conversão (int continua int)
Score = Union[StrictInt, StrictFloat]


class SkinTypes(Enum):
    OILY = "oily"
    DRY = "dry"
    COMBINATION = "combination"
    NORMAL = "normal"
    UNKNOWN = "unknown"


class FitzpatrickScale(Enum):
    I = "I"
    II = "II"
    III = "III"
    IV = "IV"
    V = "V"
    VI = "VI"
    UNKNOWN = "unknown"


SKIN_TYPE_VALUES = [item.value for item in SkinTypes]
FITZPATRICK_VALUES = [item.value for item in FitzpatrickScale]

ISSUE_KEYS = [
    "acne", "wrinkles", "hyperpigmentation", "pores", "redness", "texture",
    "hydration", "oiliness", "darkCircles", "symmetry",
]
RECOMMENDATION_KEYS = ["morningRoutine", "eveningRoutine", "weeklyTreatments", "lifestyleTips"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SkinIssue(_CamelModel):
    score: Score
    severity: str
    areas: Optional[List[str]] = None


class SymmetryIssue(_CamelModel):
    score: Score
    description: str


class SkinIssues(_CamelModel):
    acne: SkinIssue
    wrinkles: SkinIssue
    hyperpigmentation: SkinIssue
    pores: SkinIssue
    redness: SkinIssue
    texture: SkinIssue
    hydration: SkinIssue
    oiliness: SkinIssue
    dark_circles: SkinIssue = Field(alias="darkCircles")
    symmetry: SymmetryIssue


class SkinRecommendations(_CamelModel):
    morning_routine: List[str] = Field(alias="morningRoutine")
    evening_routine: List[str] = Field(alias="eveningRoutine")
    weekly_treatments: List[str] = Field(alias="weeklyTreatments")
    lifestyle_tips: List[str] = Field(alias="lifestyleTips")


class AnalysisResult(_CamelModel):
    overall_score: Score = Field(alias="overallScore")
    skin_type: SkinTypes = Field(alias="skinType")
    fitzpatrick_scale: FitzpatrickScale = Field(alias="fitzpatrickScale")
    issues: SkinIssues
    recommendations: SkinRecommendations
    explainability: str

    def to_payload(self) -> dict:
        """Devolve o resultado no mesmo formato JSON recebido do modelo."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class AnalysisResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    result: dict
    skin_type_description: str = Field(alias="skinTypeDescription")
    fitzpatrick_description: str = Field(alias="fitzpatrickDescription")


class CredentialStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selected: bool
    picker_available: bool = Field(alias="pickerAvailable")
    environment_key: bool = Field(alias="environmentKey")


SKIN_TYPE_DESCRIPTIONS = {
    SkinTypes.OILY: "Characterized by excess sebum production, leading to a shiny complexion and proneness to breakouts.",
    SkinTypes.DRY: "Lacks moisture, often feels tight, can appear flaky or dull.",
    SkinTypes.COMBINATION: "Oily in the T-zone (forehead, nose, chin) and dry or normal on the cheeks and other areas.",
    SkinTypes.NORMAL: "Well-balanced, clear, not too oily or too dry with minimal imperfections.",
}

FITZPATRICK_DESCRIPTIONS = {
    FitzpatrickScale.I: "Very fair skin, always burns, never tans.",
    FitzpatrickScale.II: "Fair skin, usually burns, sometimes tans.",
    FitzpatrickScale.III: "Medium skin, sometimes burns, usually tans.",
    FitzpatrickScale.IV: "Olive skin, rarely burns, always tans.",
    FitzpatrickScale.V: "Dark brown skin, very rarely burns, tans easily.",
    FitzpatrickScale.VI: "Deeply pigmented dark brown/black skin, never burns, tans easily.",
}


def describe_skin_type(skin_type: SkinTypes) -> str:
    return SKIN_TYPE_DESCRIPTIONS.get(skin_type, "Skin type could not be determined.")


def describe_fitzpatrick(scale: FitzpatrickScale) -> str:
    return FITZPATRICK_DESCRIPTIONS.get(scale, "Fitzpatrick scale could not be determined.")


def build_analysis_response(result: AnalysisResult) -> AnalysisResponse:
    return AnalysisResponse(
        result=result.to_payload(),
        skin_type_description=describe_skin_type(result.skin_type),
        fitzpatrick_description=describe_fitzpatrick(result.fitzpatrick_scale),
    )
