import requests
from umesao.errors import ConfigurationError, ExternalServiceError

OCR_MARKDOWN_INSTRUCTIONS = (
    "You are a helpful assistant. Please output only the final Markdown without any additional "
    "explanation or commentary. Even the code block(triple single quotes) that indicates this is "
    "a markdown is unwanted."
)

OCR_MARKDOWN_PROMPT = (
    "Reconstruct the following OCR file into a Markdown file. If parts of the output look like an "
    "error, delete or modify them. You might need to change the heading or create lists or even "
    "tables. Here is the OCR result:\n\n{ocr}"
)

TRANSLATION_INSTRUCTIONS = (
    "You are a professional translator. Translate the given text while preserving all markdown "
    "formatting exactly as it appears in the original text."
)

TRANSLATION_PROMPT = "Translate the following text to {language}. Preserve the markdown formatting:\n\n{text}"


class OpenAIService:
    """Wrapper around the OpenAI API for chat, vision and embedding calls."""

    def __init__(self, config):
        self.config = config
        self.base_url = config["OPENAI_BASE_URL"].rstrip("/")
        self.timeout = config.get("HTTP_TIMEOUT", 120)

    @property
    def api_key(self):
        key = self.config.get("OPENAI_API_KEY", "")
        if not key:
            raise ConfigurationError("OPENAI_KEY environment variable is not set")
        return key

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _post(self, path, payload, operation):
        headers = self._headers()
        try:
            resp = requests.post(
                f"{self.base_url}/{path}",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalServiceError(f"{operation}: request failed: {e}") from e

        if resp.status_code != 200:
            raise ExternalServiceError(
                f"{operation}: API request failed with status {resp.status_code}: {resp.text}"
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ExternalServiceError(f"{operation}: response is not valid JSON") from e

    def chat_completion(self, messages, model=None, temperature=None, max_tokens=None,
                        require_stop=False, operation="chat completion"):
        """Non-streaming chat completion. Returns the first choice's content."""
        if not model:
            model = self.config["TRANSLATION_MODEL"]

        payload = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        data = self._post("chat/completions", payload, operation)
        choices = data.get("choices") or []
        if not choices:
            raise ExternalServiceError(f"{operation}: no valid response from API")

        choice = choices[0]
        if require_stop and choice.get("finish_reason") != "stop":
            raise ExternalServiceError(
                f"{operation}: finish reason is not 'stop': {choice.get('finish_reason')}"
            )
        content = (choice.get("message") or {}).get("content")
        if content is None:
            raise ExternalServiceError(f"{operation}: no content in the response")
        return content

    def vision_completion(self, images_b64, prompt, model=None, max_tokens=300, detail="high"):
        """
        Send images + prompt to a vision model.
        images_b64: list of base64-encoded JPEG strings
        Returns: model text response
        """
        if not model:
            model = self.config["VISION_MODEL"]

        content = [{"type": "text", "text": prompt}]
        for img_b64 in images_b64:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:image/jpeg;base64,{img_b64}", "detail": detail},
            })

        messages = [{"role": "user", "content": content}]
        return self.chat_completion(
            messages, model=model, max_tokens=max_tokens, operation="vision completion"
        )

    def embeddings(self, texts, model=None, dimensions=None):
        """
        Embed a list of strings.

        The API tags each vector with the index of its input and does not promise
        to answer in request order, so results are re-sorted by that index.
        """
        if not texts:
            return []
        model = model or self.config["EMBEDDING_MODEL"]
        dimensions = dimensions or self.config["EMBEDDING_DIMENSIONS"]

        payload = {
            "input": list(texts),
            "model": model,
            "encoding_format": "float",
            "dimensions": dimensions,
        }
        data = self._post("embeddings", payload, "embedding generation")

        try:
            items = sorted(data["data"], key=lambda item: item["index"])
            vectors = [item["embedding"] for item in items]
        except (KeyError, TypeError) as e:
            raise ExternalServiceError(f"embedding generation: malformed response: {e}") from e

        if len(vectors) != len(texts):
            raise ExternalServiceError(
                f"embedding generation: expected {len(texts)} vectors, got {len(vectors)}"
            )
        return vectors

    def ocr_to_markdown(self, ocr_text, model=None):
        """Reconstruct raw OCR output as markdown."""
        # o1 models reject system messages, so the instructions ride as an assistant turn
        messages = [
            {"role": "assistant", "content": OCR_MARKDOWN_INSTRUCTIONS},
            {"role": "user", "content": OCR_MARKDOWN_PROMPT.format(ocr=ocr_text)},
        ]
        return self.chat_completion(
            messages,
            model=model or self.config["OCR_MARKDOWN_MODEL"],
            require_stop=True,
            operation="OCR to markdown",
        )

    def translate(self, text, language, model=None):
        messages = [
            {"role": "system", "content": TRANSLATION_INSTRUCTIONS},
            {"role": "user", "content": TRANSLATION_PROMPT.format(language=language, text=text)},
        ]
        return self.chat_completion(
            messages,
            model=model or self.config["TRANSLATION_MODEL"],
            require_stop=True,
            operation="translation",
        )
