import json
import logging
import time
from abc import ABC, abstractmethod
import requests
from umesao.errors import ConfigurationError, ExternalServiceError, RetryExhaustedError
from umesao.utils.image_utils import image_to_jpeg_base64, resize_image_for_vision

logger = logging.getLogger(__name__)

VISION_CAPTION_PROMPT = (
    "This is a image that is either a diagram, graph, chart or table. Explain what this "
    "visualization is and the insights. Output only the results as a complete paragraph, "
    "so this could be used as an caption."
)

MISTRAL_OCR_MODEL = "mistral-ocr-latest"


class TextExtractor(ABC):
    """Turns a card photo into text."""

    method = None

    @abstractmethod
    def extract(self, image_bytes):
        """
        Args:
            image_bytes: the uploaded image file content

        Returns:
            extracted text (markdown for the OCR methods)
        """


class AzureReadExtractor(TextExtractor):
    """
    Azure Read API v3.2. Submitting returns an Operation-Location to poll;
    the recognised lines are then rebuilt as markdown by the chat model.
    """

    method = "ocr"

    def __init__(self, endpoint, key, openai, language="ja", poll_interval=3, poll_attempts=3, timeout=120):
        if not endpoint:
            raise ConfigurationError("AZURE_ENDPOINT environment variable is not set")
        if not key:
            raise ConfigurationError("AZURE_KEY environment variable is not set")
        self.endpoint = endpoint.rstrip("/")
        self.key = key
        self.openai = openai
        self.language = language
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.timeout = timeout

    def submit(self, image_bytes):
        url = f"{self.endpoint}/vision/v3.2/read/analyze"
        try:
            resp = requests.post(
                url,
                params={"language": self.language},
                headers={
                    "Ocp-Apim-Subscription-Key": self.key,
                    "Content-Type": "application/octet-stream",
                },
                data=image_bytes,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"sending OCR request: {e}") from e

        location = resp.headers.get("Operation-Location")
        if resp.status_code >= 300 or not location:
            raise ExternalServiceError(
                f"sending OCR request: Operation-Location not found in response "
                f"(status {resp.status_code}): {resp.text}"
            )
        return location

    def fetch_result(self, location):
        try:
            resp = requests.get(
                location,
                headers={"Ocp-Apim-Subscription-Key": self.key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"fetching OCR result: {e}") from e

        if resp.status_code != 200:
            raise ExternalServiceError(f"fetching OCR result: API request failed: {resp.text}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise ExternalServiceError("fetching OCR result: response is not valid JSON") from e

        status = payload.get("status")
        if status != "succeeded":
            raise ExternalServiceError(f"fetching OCR result: status is {status!r}")
        return payload

    def poll(self, location):
        """Wait, fetch, and retry failed fetches up to poll_attempts times."""
        retries_left = self.poll_attempts
        while True:
            time.sleep(self.poll_interval)
            try:
                return self.fetch_result(location)
            except ExternalServiceError as e:
                if retries_left <= 0:
                    raise RetryExhaustedError(
                        f"too many failed OCR fetch attempts ({self.poll_attempts + 1}): {e}"
                    ) from e
                retries_left -= 1
                logger.warning(f"OCR fetch did not succeed: {e}. Retrying in {self.poll_interval} seconds...")

    @staticmethod
    def lines(payload):
        """Recognised lines with their bounding boxes, page by page."""
        read_results = (payload.get("analyzeResult") or {}).get("readResults") or []
        return [
            {"boundingBox": line.get("boundingBox"), "text": line.get("text", "")}
            for page in read_results
            for line in page.get("lines") or []
        ]

    def extract(self, image_bytes):
        location = self.submit(image_bytes)
        payload = self.poll(location)
        ocr_json = json.dumps({"lines": self.lines(payload)}, ensure_ascii=False)
        return self.openai.ocr_to_markdown(ocr_json)


class MistralOCRExtractor(TextExtractor):
    method = "mistral"

    def __init__(self, api_key, openai, url="https://api.mistral.ai/v1/ocr", timeout=120):
        if not api_key:
            raise ConfigurationError("MISTRAL_KEY environment variable is not set")
        self.api_key = api_key
        self.openai = openai
        self.url = url
        self.timeout = timeout

    def recognize(self, image_bytes):
        image_url = f"data:image/jpeg;base64,{image_to_jpeg_base64(image_bytes)}"
        payload = {
            "model": MISTRAL_OCR_MODEL,
            "document": {"type": "image_url", "image_url": image_url},
        }
        try:
            resp = requests.post(
                self.url,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"Mistral OCR: request failed: {e}") from e

        if resp.status_code != 200:
            raise ExternalServiceError(
                f"Mistral OCR: API request failed with status {resp.status_code}: {resp.text}"
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ExternalServiceError("Mistral OCR: response is not valid JSON") from e

        # Current API answers per page; older deployments return a flat "text"
        if data.get("pages"):
            return "\n\n".join(page.get("markdown", "") for page in data["pages"])
        if "text" in data:
            return data["text"]
        raise ExternalServiceError("Mistral OCR: no text in the response")

    def extract(self, image_bytes):
        return self.openai.ocr_to_markdown(self.recognize(image_bytes))


class VisionCaptionExtractor(TextExtractor):
    method = "vision"

    def __init__(self, openai, model=None):
        self.openai = openai
        self.model = model

    def extract(self, image_bytes):
        image_b64 = resize_image_for_vision(image_bytes)
        caption = self.openai.vision_completion(
            [image_b64], VISION_CAPTION_PROMPT, model=self.model, max_tokens=300, detail="high"
        )
        logger.info("Successfully received response from Vision API")
        return caption


EXTRACTION_METHODS = ("ocr", "mistral", "vision")


def create_extractor(method, config, openai):
    """Create the text extractor for an extraction method."""
    method = (method or config.get("DEFAULT_EXTRACTION_METHOD", "ocr")).lower()
    timeout = config.get("HTTP_TIMEOUT", 120)

    if method == "ocr":
        return AzureReadExtractor(
            endpoint=config.get("AZURE_ENDPOINT", ""),
            key=config.get("AZURE_KEY", ""),
            openai=openai,
            language=config.get("OCR_LANGUAGE", "ja"),
            poll_interval=config.get("OCR_POLL_INTERVAL", 3),
            poll_attempts=config.get("OCR_POLL_ATTEMPTS", 3),
            timeout=timeout,
        )

    elif method == "mistral":
        return MistralOCRExtractor(
            api_key=config.get("MISTRAL_API_KEY", ""),
            openai=openai,
            url=config.get("MISTRAL_OCR_URL", "https://api.mistral.ai/v1/ocr"),
            timeout=timeout,
        )

    elif method == "vision":
        return VisionCaptionExtractor(openai, model=config.get("VISION_MODEL"))

    else:
        raise ValueError(f"invalid method: {method}. Must be one of 'ocr', 'mistral' or 'vision'")
