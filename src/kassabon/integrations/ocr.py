"""OCR Engine using Google Cloud Vision API for receipt and invoice text extraction."""

import mimetypes
import threading
from pathlib import Path

from google.cloud import vision

PDF_MIME_TYPE = "application/pdf"
# Vision annotates at most five pages per synchronous file request
PDF_PAGES = [1, 2, 3, 4, 5]


class OCREngine:
    """
    OCR Engine turning document files into raw text.

    Images go through Google Vision text detection, PDFs through Vision's
    document text detection, plain text files are decoded as is. The text is
    returned however noisy it is; parsing it is the extraction engine's job.
    """

    def __init__(self, client: vision.ImageAnnotatorClient | None = None) -> None:
        """
        Initialize the OCR Engine.

        Args:
            client: Optional pre-configured ImageAnnotatorClient.
                   If None, a default client will be created lazily on first use.
        """
        self._client = client
        self._client_initialized = client is not None
        self._client_lock = threading.Lock()

    @property
    def client(self) -> vision.ImageAnnotatorClient:
        """Lazily initialize and return the Vision API client.

        Uses double-check locking for thread-safe lazy initialization, so
        documents processed from executor threads share one client.
        """
        if not self._client_initialized:
            with self._client_lock:
                if not self._client_initialized:
                    self._client = vision.ImageAnnotatorClient()
                    self._client_initialized = True
        return self._client  # type: ignore[return-value]

    @staticmethod
    def guess_mime_type(path: Path) -> str:
        mime_type, _ = mimetypes.guess_type(path.name)
        return mime_type or "application/octet-stream"

    def extract_raw_text(self, content: bytes, mime_type: str) -> str:
        """
        Extract text from a document's bytes.

        Args:
            content: The raw file content.
            mime_type: MIME type of the content, e.g. image/jpeg or application/pdf.

        Returns:
            Extracted text. Returns empty string if no text is found.

        Raises:
            google.api_core.exceptions.GoogleAPIError: If the API call fails.
        """
        if mime_type.startswith("text/"):
            return content.decode("utf-8", errors="replace")
        if mime_type == PDF_MIME_TYPE:
            return self._extract_pdf_text(content)

        # vision.Image content expects bytes,
        # but type hints sometimes incorrectly expect a dict
        image = vision.Image(content=content)  # type: ignore
        response = self.client.text_detection(image=image)  # type: ignore

        if response.text_annotations:
            # The first annotation contains the entire detected text
            return response.text_annotations[0].description
        return ""

    def _extract_pdf_text(self, content: bytes) -> str:
        request = vision.AnnotateFileRequest(
            input_config=vision.InputConfig(content=content, mime_type=PDF_MIME_TYPE),
            features=[vision.Feature(type_=vision.Feature.Type.DOCUMENT_TEXT_DETECTION)],
            pages=PDF_PAGES,
        )
        response = self.client.batch_annotate_files(requests=[request])  # type: ignore

        pages = []
        for file_response in response.responses:
            for page in file_response.responses:
                if page.full_text_annotation.text:
                    pages.append(page.full_text_annotation.text)
        return "\n".join(pages)

    def extract_text(self, file_path: str) -> str:
        """
        Extract text from a file on disk.

        Raises:
            FileNotFoundError: If the file does not exist.
            google.api_core.exceptions.GoogleAPIError: If the API call fails.
        """
        path = Path(file_path)
        if not path.exists() or not path.is_file():
            raise FileNotFoundError(f"Document file not found: {file_path}")

        return self.extract_raw_text(path.read_bytes(), self.guess_mime_type(path))
