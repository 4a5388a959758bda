"""OpenAI Responses API client for face detection."""

import base64
import json
from dataclasses import dataclass

from openai import AsyncOpenAI

from guest_gallery.domain.photos import FaceDetection
from guest_gallery.services.faces import FACE_SCHEMA, FaceDetector

FACE_PROMPT = (
    "Find every human face in the image. "
    "Return each face as a bounding box with x, y, width and height given as "
    "fractions (0-1) of the image width and height, measured from the top-left "
    "corner, plus a confidence (0-1)."
)


@dataclass
class OpenAIFaceDetector(FaceDetector):
    """Face detector backed by OpenAI Responses API."""

    client: AsyncOpenAI
    model: str
    reasoning_effort: str | None = None

    @classmethod
    def create(cls, api_key: str, model: str) -> "OpenAIFaceDetector":
        """Create an OpenAI face detector."""
        return cls(client=AsyncOpenAI(api_key=api_key), model=model)

    async def detect_faces(self, image_bytes: bytes) -> list[FaceDetection]:
        """Call OpenAI Responses API with structured outputs."""
        request_payload: dict[str, object] = {
            "model": self.model,
            "input": [
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": FACE_PROMPT},
                        {"type": "input_image", "image_url": _to_data_url(image_bytes)},
                    ],
                }
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "face_boxes",
                    "strict": True,
                    "schema": FACE_SCHEMA,
                }
            },
            "store": False,
        }
        if self.reasoning_effort:
            request_payload["reasoning"] = {"effort": self.reasoning_effort}

        response = await self.client.responses.create(**request_payload)
        output_text = response.output_text
        if not output_text:
            raise RuntimeError("OpenAI returned an empty response")
        raw = json.loads(output_text)
        return [FaceDetection.model_validate(face) for face in raw.get("faces", [])]

    async def close(self) -> None:
        await self.client.close()


def _to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"
