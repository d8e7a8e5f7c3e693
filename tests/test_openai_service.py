import pytest
import requests
from umesao.errors import ConfigurationError, ExternalServiceError
from umesao.services.openai_service import OpenAIService
from tests.test_extraction import config_dict, response


@pytest.fixture
def service():
    return OpenAIService(config_dict())


def chat_payload(content, finish_reason="stop"):
    return {"choices": [{"message": {"content": content}, "finish_reason": finish_reason}]}


def test_embeddings_are_resorted_by_index(mocker, service):
    post = mocker.patch("umesao.services.openai_service.requests.post", return_value=response(
        mocker, payload={"data": [
            {"index": 2, "embedding": [0.3]},
            {"index": 0, "embedding": [0.1]},
            {"index": 1, "embedding": [0.2]},
        ]}
    ))

    vectors = service.embeddings(["a", "b", "c"], model="text-embedding-3-small", dimensions=1536)

    assert vectors == [[0.1], [0.2], [0.3]]
    body = post.call_args.kwargs["json"]
    assert body["input"] == ["a", "b", "c"]
    assert body["dimensions"] == 1536
    assert post.call_args.args[0].endswith("/embeddings")
    assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer test-key"


def test_embeddings_count_mismatch(mocker, service):
    mocker.patch("umesao.services.openai_service.requests.post", return_value=response(
        mocker, payload={"data": [{"index": 0, "embedding": [0.1]}]}
    ))
    with pytest.raises(ExternalServiceError):
        service.embeddings(["a", "b"])


def test_embeddings_of_nothing_makes_no_request(mocker, service):
    post = mocker.patch("umesao.services.openai_service.requests.post")
    assert service.embeddings([]) == []
    post.assert_not_called()


def test_non_200_is_external_service_error(mocker, service):
    mocker.patch("umesao.services.openai_service.requests.post", return_value=response(
        mocker, status=429, text="rate limited"
    ))
    with pytest.raises(ExternalServiceError, match="429"):
        service.embeddings(["a"])


def test_network_failure_is_external_service_error(mocker, service):
    mocker.patch(
        "umesao.services.openai_service.requests.post",
        side_effect=requests.Timeout("slow"),
    )
    with pytest.raises(ExternalServiceError):
        service.translate("text", "English")


def test_missing_key_is_configuration_error(mocker):
    post = mocker.patch("umesao.services.openai_service.requests.post")
    service = OpenAIService(config_dict(OPENAI_API_KEY=""))
    with pytest.raises(ConfigurationError):
        service.embeddings(["a"])
    post.assert_not_called()


def test_ocr_to_markdown_requires_stop(mocker, service):
    mocker.patch("umesao.services.openai_service.requests.post", return_value=response(
        mocker, payload=chat_payload("# Partial", finish_reason="length")
    ))
    with pytest.raises(ExternalServiceError):
        service.ocr_to_markdown('{"lines": []}')


def test_ocr_to_markdown_prompt(mocker, service):
    post = mocker.patch("umesao.services.openai_service.requests.post", return_value=response(
        mocker, payload=chat_payload("# Card")
    ))

    assert service.ocr_to_markdown("raw ocr") == "# Card"

    body = post.call_args.kwargs["json"]
    assert body["model"] == "o1-mini"
    assert [m["role"] for m in body["messages"]] == ["assistant", "user"]
    assert "raw ocr" in body["messages"][1]["content"]


def test_translate_keeps_markdown_instruction(mocker, service):
    post = mocker.patch("umesao.services.openai_service.requests.post", return_value=response(
        mocker, payload=chat_payload("# Karte")
    ))

    assert service.translate("# Card", "German") == "# Karte"

    body = post.call_args.kwargs["json"]
    assert body["model"] == "gpt-4o"
    assert "German" in body["messages"][1]["content"]
    assert "markdown" in body["messages"][0]["content"]
