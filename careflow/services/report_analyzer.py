import os
import tempfile
from typing import Protocol

from careflow.config import settings
from careflow.errors import UpstreamUnavailable


class ReportAnalyzer(Protocol):
    def analyze(self, file_bytes: bytes, file_name: str, mime_type: str, report_type: str) -> str: ...


def parse_pdf_bytes(file_bytes: bytes, file_name: str, llama_api_key: str | None = None) -> str:
    try:
        from llama_parse import LlamaParse
    except ImportError as exc:
        raise UpstreamUnavailable("llama_parse is not installed") from exc

    api_key = llama_api_key or settings.llama_cloud_api_key
    if not api_key:
        raise UpstreamUnavailable("LLAMA_CLOUD_API_KEY is missing")

    parser = LlamaParse(
        api_key=api_key,
        use_vendor_multimodal_model=True,
        vendor_multimodal_model_name="openai-gpt4o",
        high_res_ocr=True,
        result_type="text",
    )
    suffix = os.path.splitext(file_name)[1] or ".pdf"
    with tempfile.NamedTemporaryFile(suffix=suffix) as tmp:
        tmp.write(file_bytes)
        tmp.flush()
        documents = parser.load_data(tmp.name, extra_info={"file_name": os.path.basename(file_name)})
    return "\n\n".join(doc.text for doc in documents)


def summarize_report_text(report_text: str, report_type: str, openai_api_key: str | None = None) -> str:
    try:
        from llama_index.llms.openai import OpenAI
    except ImportError as exc:
        raise UpstreamUnavailable("llama_index is not installed") from exc

    api_key = openai_api_key or settings.openai_api_key
    if not api_key:
        raise UpstreamUnavailable("OPENAI_API_KEY is missing")

    llm = OpenAI(model=settings.ai_model, api_key=api_key, temperature=0.0)
    prompt = f"""
You are an expert medical report reviewer preparing notes for a doctor.
Summarise the {report_type} report below in at most eight sentences.

Instructions:
- List abnormal findings first, with their values and reference ranges when present
- Mention notable normal findings briefly
- Do not give treatment advice
- If the text is unreadable or not a medical report, say so

Report text:
{report_text}
"""
    response = llm.complete(prompt)
    return getattr(response, "text", str(response)).strip()


class LlamaReportAnalyzer:
    """LlamaParse extracts PDF text; an OpenAI model writes the summary."""

    def analyze(self, file_bytes: bytes, file_name: str, mime_type: str, report_type: str) -> str:
        try:
            if mime_type == "application/pdf":
                text = parse_pdf_bytes(file_bytes=file_bytes, file_name=file_name)
            else:
                # images carry no extractable text; summarise what is known about them
                text = f"Uploaded {mime_type} image named '{file_name}' labelled as {report_type}."
            return summarize_report_text(text, report_type)
        except UpstreamUnavailable:
            raise
        except Exception as exc:
            raise UpstreamUnavailable("Report analysis engine is unavailable") from exc


def get_report_analyzer() -> ReportAnalyzer:
    return LlamaReportAnalyzer()
