"""
Execution engine client - sync httpx wrapper around the ComfyUI HTTP API.

All requests carry explicit timeouts. Rate-limited (429), 5xx and timed
out requests are retried with exponential backoff; other failures are
raised as EngineError.
"""
import json
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx

from generation_queue.config import Settings, get_settings
from generation_queue.engine.models import (
    OutputFile,
    PromptResponse,
    QueueStatus,
    UploadResult,
)
from generation_queue.observability import get_logger, with_task_context

logger = get_logger(__name__)

# History output keys, in the order they are searched for an artifact
OUTPUT_MEDIA_KEYS = ("audio", "videos", "gifs", "images")


class EngineError(Exception):
    """Error talking to the execution engine."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        url: str | None = None,
        method: str | None = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.url = url
        self.method = method
        super().__init__(message)


class EngineRejectedError(EngineError):
    """The engine refused a prompt; node_errors explains why."""

    def __init__(self, message: str, node_errors: dict[str, Any] | None = None, **kwargs: Any):
        self.node_errors = node_errors or {}
        super().__init__(message, **kwargs)


class ComfyUIClient:
    """
    Client for a ComfyUI-compatible execution engine.

    Args:
        settings: Settings to read engine options from (defaults to global)
        http_client: Pre-built httpx.Client, mainly for tests
        client_id: Client ID sent with each prompt (random if omitted)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.Client | None = None,
        client_id: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.client_id = client_id or str(uuid.uuid4())
        self._owns_client = http_client is None
        if http_client is None:
            http_client = httpx.Client(
                timeout=httpx.Timeout(
                    connect=5.0,
                    read=self.settings.engine_timeout_s,
                    write=5.0,
                    pool=5.0,
                )
            )
        self._http = http_client
        self._sleep = time.sleep

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.settings.engine_api_root}{path}"

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = self._url(path)
        max_retries = self.settings.engine_max_retries

        for attempt in range(max_retries + 1):
            try:
                response = self._http.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                if attempt < max_retries:
                    wait_time = 0.5 * (2**attempt)
                    logger.warning(
                        f"Engine request timeout, retrying in {wait_time}s",
                        extra={"url": url, "method": method},
                    )
                    self._sleep(wait_time)
                    continue
                raise EngineError(
                    f"Request timeout: {e}", url=url, method=method
                ) from e
            except httpx.HTTPError as e:
                raise EngineError(f"HTTP error: {e}", url=url, method=method) from e

            if response.status_code == 429 or 500 <= response.status_code < 600:
                if attempt < max_retries:
                    wait_time = 0.5 * (2**attempt)
                    logger.warning(
                        f"Engine returned {response.status_code}, retrying in {wait_time}s",
                        extra={"url": url, "method": method},
                    )
                    self._sleep(wait_time)
                    continue

            if response.status_code >= 400:
                raise EngineError(
                    f"{method} {path} failed with status {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                    url=url,
                    method=method,
                )
            return response

        raise EngineError("Max retries exceeded", url=url, method=method)

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise EngineError(
                f"Invalid JSON from engine: {e}",
                status_code=response.status_code,
                response_body=response.text,
            ) from e

    # ------------------------------------------------------------------
    # Prompt lifecycle
    # ------------------------------------------------------------------

    def submit(self, payload: dict[str, Any]) -> PromptResponse:
        """
        Queue a flattened graph.

        Args:
            payload: Flattened prompt payload

        Returns:
            PromptResponse with the engine-assigned prompt_id

        Raises:
            EngineRejectedError: If the engine reports node errors
            EngineError: On transport failures
        """
        body = {"prompt": payload, "client_id": self.client_id}
        try:
            response = self._request("POST", "/prompt", json=body)
        except EngineError as e:
            if e.status_code == 400 and e.response_body:
                raise self._rejection(e) from e
            raise

        result = PromptResponse.model_validate(self._json(response))
        if result.node_errors:
            raise EngineRejectedError(
                f"Engine rejected prompt: {json.dumps(result.node_errors)}",
                node_errors=result.node_errors,
            )
        logger.info(
            "Prompt queued",
            extra=with_task_context(job_id=result.prompt_id, queue_number=result.number),
        )
        return result

    def _rejection(self, error: EngineError) -> EngineRejectedError:
        try:
            details = json.loads(error.response_body or "")
        except json.JSONDecodeError:
            details = {}
        node_errors = details.get("node_errors") or {} if isinstance(details, dict) else {}
        reason = details.get("error") if isinstance(details, dict) else None
        if isinstance(reason, dict):
            reason = reason.get("message")
        message = f"Engine rejected prompt: {reason or error.response_body}"
        return EngineRejectedError(
            message,
            node_errors=node_errors,
            status_code=error.status_code,
            response_body=error.response_body,
            url=error.url,
            method=error.method,
        )

    def get_queue_status(self) -> QueueStatus:
        """
        Read the running and pending sets from GET /queue.

        Each queue entry is [number, prompt_id, prompt, extra_data, outputs];
        pending entries are ordered by number.
        """
        data = self._json(self._request("GET", "/queue"))
        running = data.get("queue_running") or []
        pending = sorted(
            (item for item in data.get("queue_pending") or [] if len(item) > 1),
            key=lambda item: item[0],
        )
        return QueueStatus(
            executing=[str(item[1]) for item in running if len(item) > 1],
            queued=[str(item[1]) for item in pending],
        )

    def cancel(self, job_id: str) -> bool:
        """
        Remove a job from the pending queue and interrupt it if running.

        Returns:
            True once both calls were accepted

        Raises:
            EngineError: If either call fails
        """
        self._request("POST", "/queue", json={"delete": [job_id]})
        self._request("POST", "/interrupt", json={"prompt_id": job_id})
        logger.info("Cancel requested", extra=with_task_context(job_id=job_id))
        return True

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def get_history(self, job_id: str) -> dict[str, Any]:
        """History entry for one job, empty until the engine records it."""
        data = self._json(self._request("GET", f"/history/{job_id}"))
        if not isinstance(data, dict):
            return {}
        return data.get(job_id) or {}

    def list_outputs(self, history: dict[str, Any]) -> list[OutputFile]:
        """Output files from a history entry, saved outputs before previews."""
        found: list[OutputFile] = []
        outputs = history.get("outputs") or {}
        for media in OUTPUT_MEDIA_KEYS:
            for node_id, node_output in outputs.items():
                for item in node_output.get(media) or []:
                    if isinstance(item, dict) and item.get("filename"):
                        found.append(OutputFile(
                            filename=item["filename"],
                            subfolder=item.get("subfolder") or "",
                            type=item.get("type") or "output",
                            node_id=str(node_id),
                            media=media,
                        ))
        return sorted(found, key=lambda f: f.type != "output")

    def download(self, output: OutputFile) -> bytes:
        """Download an output file via GET /view."""
        response = self._request(
            "GET",
            "/view",
            params={
                "filename": output.filename,
                "subfolder": output.subfolder,
                "type": output.type,
            },
        )
        return response.content

    def fetch_artifact(self, job_id: str, subfolder: str, filename_prefix: str) -> str | None:
        """
        Download a finished job's first output into the local output directory.

        The history entry can lag behind the queue, so it is polled up to
        `artifact_retries` times.

        Args:
            job_id: Engine job ID
            subfolder: Local subfolder under output_dir
            filename_prefix: Prefix of the saved file name

        Returns:
            Web-style path "/<subfolder>/<file>", or None if no output appeared
        """
        attempts = max(self.settings.artifact_retries, 1)
        for attempt in range(attempts):
            history = self.get_history(job_id)
            outputs = self.list_outputs(history)
            if outputs:
                return self._save_artifact(job_id, outputs[0], subfolder, filename_prefix)

            if attempt < attempts - 1:
                logger.debug(
                    f"No outputs yet, retry {attempt + 1}/{attempts}",
                    extra=with_task_context(job_id=job_id),
                )
                self._sleep(self.settings.artifact_retry_delay_s)

        logger.warning("No outputs found for job", extra=with_task_context(job_id=job_id))
        return None

    def _save_artifact(
        self,
        job_id: str,
        output: OutputFile,
        subfolder: str,
        filename_prefix: str,
    ) -> str:
        data = self.download(output)
        extension = Path(output.filename).suffix or ".bin"
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        name = f"{filename_prefix}_{job_id}_{timestamp}{extension}"

        target_dir = Path(self.settings.output_dir) / subfolder
        target_dir.mkdir(parents=True, exist_ok=True)
        (target_dir / name).write_bytes(data)

        logger.info(
            "Artifact saved",
            extra=with_task_context(job_id=job_id, artifact=str(target_dir / name), size=len(data)),
        )
        return f"/{subfolder}/{name}"

    # ------------------------------------------------------------------
    # Inputs and catalog
    # ------------------------------------------------------------------

    def upload_file(
        self,
        data: bytes,
        filename: str,
        subfolder: str = "",
        overwrite: bool = False,
    ) -> str:
        """
        Upload an input file for loader nodes (images and audio alike).

        Returns:
            The engine-side reference ("subfolder/name" or "name")

        Raises:
            EngineError: If the upload is rejected
        """
        response = self._request(
            "POST",
            "/upload/image",
            files={"image": (filename, data)},
            data={
                "subfolder": subfolder,
                "type": "input",
                "overwrite": "true" if overwrite else "false",
            },
        )
        result = UploadResult.model_validate(self._json(response))
        logger.info("Uploaded input file", extra={"upload_name": result.reference})
        return result.reference

    def list_models(self, node_kind: str, input_name: str) -> list[str]:
        """
        Options the engine offers for a loader input, e.g. ("UNETLoader", "unet_name").
        """
        data = self._json(self._request("GET", f"/object_info/{node_kind}"))
        spec = (
            data.get(node_kind, {}).get("input", {}).get("required", {}).get(input_name)
        )
        if isinstance(spec, list) and spec and isinstance(spec[0], list):
            return [str(option) for option in spec[0]]
        return []

    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> "ComfyUIClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
