import logging

from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY

from fastapi import FastAPI, Request, HTTPException, File, UploadFile, Depends
from fastapi.responses import JSONResponse

from app.Settings import Settings
from app.ai.AiServices import analyze_skin_image
from app.ai.Credentials import (
    API_KEY_BILLING_LINK,
    CredentialContext,
    StaticCredentialPicker,
    build_credential_picker,
)
from app.models.Errors import (
    CREDENTIAL_ERRORS,
    AnalysisResponseError,
    NoImageToAnalyzeError,
    SkinScanError,
)
from app.models.Request import Base64ImageRequest, CapturedImage, SelectCredentialRequest
from app.models.Response import AnalysisResponse, CredentialStatusResponse, build_analysis_response
from app.scan.ImageUtils import ImageProcessingError, prepare_upload, to_base64


def build_credential_context(settings: Settings) -> CredentialContext:
    # Com API_KEY no ambiente, o cliente não pode trocar a chave
    picker = build_credential_picker("none" if settings.api_key else "static")
    return CredentialContext(picker=picker, environment_key=settings.api_key)


settings = Settings.from_env()

app = FastAPI(title="Skin Scan")
app.state.settings = settings
app.state.credentials = build_credential_context(settings)
# Modelo substituto (testes); None usa o Gemini
app.state.model = None

origins = ['*']
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

logger = logging.getLogger('uvicorn')


@app.exception_handler(ValidationError)
async def pydantic_validation_exception_handler(request: Request, exc: ValidationError):
    error_details = [
        {
            "field": ".".join(str(loc_part) for loc_part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": error_details,
            "error": "Validation Error",
            "path": request.url.path,
        }
    )


def _status_for(exc: SkinScanError) -> int:
    if isinstance(exc, CREDENTIAL_ERRORS):
        return 401
    if isinstance(exc, AnalysisResponseError):
        return 502
    if isinstance(exc, NoImageToAnalyzeError):
        return 400
    return 500


@app.exception_handler(SkinScanError)
async def skin_scan_exception_handler(request: Request, exc: SkinScanError):
    content = {
        "detail": exc.message,
        "error": exc.kind,
        "path": request.url.path,
    }
    if isinstance(exc, CREDENTIAL_ERRORS):
        content["billingLink"] = API_KEY_BILLING_LINK
    return JSONResponse(status_code=_status_for(exc), content=content)


def get_credentials(request: Request) -> CredentialContext:
    return request.app.state.credentials


async def run_analysis(request: Request, image: CapturedImage) -> AnalysisResponse:
    credentials = get_credentials(request)
    try:
        result = await analyze_skin_image(
            image.data,
            image.mime_type,
            credentials,
            model_name=request.app.state.settings.model_name,
            model=request.app.state.model,
        )
    except SkinScanError:
        raise
    except Exception as e:
        logger.error(f"Erro ao processar análise: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Erro ao processar análise: {str(e)}")
    return build_analysis_response(result)


async def read_upload(image: UploadFile) -> CapturedImage:
    data = await image.read()
    try:
        image_data, mime_type = prepare_upload(data, image.content_type, image.filename)
    except ImageProcessingError as e:
        logging.error(f"Erro ao processar a imagem: {e}")
        raise HTTPException(status_code=400, detail=f"Erro ao processar imagem: {str(e)}")
    return CapturedImage(data=to_base64(image_data), mime_type=mime_type)


@app.get('/health', summary='Health check')
async def health():
    return {"status": "ok", "model": app.state.settings.model_name}


@app.post('/analyze', summary='Creates a new skin analysis from an uploaded image',
          response_model=AnalysisResponse)
async def analyze_upload(request: Request, image: UploadFile = File(...)):
    captured = await read_upload(image)
    return await run_analysis(request, captured)


@app.post('/analyze/base64', summary='Creates a new skin analysis from a base64 image',
          response_model=AnalysisResponse)
async def analyze_base64(request: Request, body: Base64ImageRequest):
    try:
        captured = body.to_captured_image()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await run_analysis(request, captured)


def _credential_status(credentials: CredentialContext) -> CredentialStatusResponse:
    return CredentialStatusResponse(
        selected=credentials.selected or bool(credentials.resolve_api_key()),
        picker_available=credentials.picker_available,
        environment_key=bool(credentials.environment_key),
    )


@app.get('/credential', summary='Reports whether an API key is available',
         response_model=CredentialStatusResponse)
async def credential_status(credentials: CredentialContext = Depends(get_credentials)):
    return _credential_status(credentials)


@app.post('/credential', summary='Selects the API key used for analyses',
          response_model=CredentialStatusResponse)
async def select_credential(body: SelectCredentialRequest,
                            credentials: CredentialContext = Depends(get_credentials)):
    picker = credentials.picker
    if not isinstance(picker, StaticCredentialPicker):
        raise HTTPException(status_code=409, detail="This server does not accept API keys from clients.")

    picker.offer(body.api_key)
    try:
        await picker.open_select_key()
    except Exception as e:
        logger.error(f"Erro ao selecionar a chave: {e}")
        raise HTTPException(status_code=400, detail=f"Failed to select API key: {e}")
    credentials.selected = True
    logger.info("[CREDENCIAL] Nova chave selecionada pelo cliente.")
    return _credential_status(credentials)
