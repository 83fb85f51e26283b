import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from pydantic_ai.models import Model

from app.Settings import Settings
from app.ai.Credentials import CredentialContext, build_credential_picker
from app.models.Errors import CredentialInvalidReselectionDoneError, SkinScanError
from app.models.Response import build_analysis_response
from app.scan.Camera import OpenCVCamera
from app.scan.ScanSession import ScanSession, ScanState

logger = logging.getLogger('uvicorn')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Capture or upload a face photo and analyze the skin.")
    parser.add_argument("--image", type=Path, help="Analyze this image file instead of using the camera")
    parser.add_argument("--camera-index", type=int, default=None, help="OpenCV camera index")
    parser.add_argument("--model", default=None, help="Gemini model name")
    parser.add_argument(
        "--picker", choices=["none", "prompt"], default="prompt",
        help="How to ask for an API key when API_KEY is not set",
    )
    return parser


async def run_scan(args: argparse.Namespace, settings: Settings, model: Optional[Model] = None) -> int:
    picker = build_credential_picker(args.picker if not settings.api_key else "none")
    credentials = CredentialContext(picker=picker, environment_key=settings.api_key)
    camera = OpenCVCamera(args.camera_index if args.camera_index is not None else settings.camera_index)

    async with ScanSession(
        credentials,
        camera=camera,
        model_name=args.model or settings.model_name,
        model=model,
        width=settings.camera_width,
        height=settings.camera_height,
        jpeg_quality=settings.jpeg_quality,
    ) as session:
        state = await session.initialize()
        if state == ScanState.CREDENTIAL_REQUIRED:
            print(session.error, file=sys.stderr)
            return 1

        if args.image is not None:
            data = args.image.read_bytes()
            content_type, _ = mimetypes.guess_type(args.image.name)
            await session.capture_from_upload(data, content_type, args.image.name)
        elif state == ScanState.CAMERA_READY:
            await session.capture_from_camera()

        if session.captured is None:
            print(session.error or "No image to analyze. Please take a photo or upload one.", file=sys.stderr)
            return 1

        try:
            try:
                result = await session.analyze()
            except CredentialInvalidReselectionDoneError:
                # Nova chave selecionada: repete uma vez
                result = await session.analyze()
        except SkinScanError as e:
            print(f"[{e.kind}] {e.message}", file=sys.stderr)
            return 1

    response = build_analysis_response(result)
    print(json.dumps(response.model_dump(by_alias=True), indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(message)s")
    return asyncio.run(run_scan(args, settings))


if __name__ == "__main__":
    sys.exit(main())
