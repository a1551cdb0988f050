"""Song download pipeline: search -> fetch -> deliver -> clean up.

Each job runs as a background task so the message handler returns right
away. Every job writes to its own file (named after the job id) in the
media temp dir, and that file is removed on every exit path, success or
failure. Failures are reported to the chat with a generic message and
never propagate.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

from danuu.config import Settings, get_settings
from danuu.errors import MediaNotFoundError
from danuu.logger import logger
from danuu.types import DownloadJob, JobStatus, MediaSource, Transport
from danuu.utils import best_effort, create_background_task, generate_job_id

type JobCallback = Callable[[DownloadJob], None]


class MediaPipeline:
    def __init__(self, source: MediaSource, settings: Settings | None = None) -> None:
        s = settings or get_settings()
        self._source = source
        self._temp_dir: Path = s.media_dir
        self._mimetype = s.media.audio_mimetype
        self._search_limit = s.media.search_limit
        self._messages = s.messages
        self._slots = asyncio.Semaphore(s.media.max_concurrent_jobs)
        self._tasks: dict[str, asyncio.Task[DownloadJob]] = {}

    @property
    def temp_dir(self) -> Path:
        return self._temp_dir

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        query: str,
        chat_id: str,
        transport: Transport,
        on_complete: JobCallback | None = None,
    ) -> DownloadJob:
        """Start a job in the background and return it immediately."""
        job = DownloadJob(id=generate_job_id(), query=query, chat_id=chat_id)
        task = create_background_task(
            self._run_and_notify(job, transport, on_complete),
            name=f"song-{job.id}",
        )
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job.id, None))
        logger.info("Song job submitted", job_id=job.id, query=query, chat_id=chat_id)
        return job

    async def _run_and_notify(
        self,
        job: DownloadJob,
        transport: Transport,
        on_complete: JobCallback | None,
    ) -> DownloadJob:
        await self.run(job, transport)
        if on_complete is not None:
            on_complete(job)
        return job

    async def run(self, job: DownloadJob, transport: Transport) -> DownloadJob:
        """Run *job* to completion. Never raises except on cancellation."""
        async with self._slots:
            try:
                await self._execute(job, transport)
            except MediaNotFoundError:
                job.status = JobStatus.FAILED
                job.error = "not found"
                logger.info("No song found", job_id=job.id, query=job.query)
                await best_effort(
                    transport.send_text(job.chat_id, self._messages.song_not_found),
                    action="report missing song",
                    job_id=job.id,
                )
            except Exception as exc:
                job.status = JobStatus.FAILED
                job.error = str(exc)
                logger.exception("Song job failed", job_id=job.id, query=job.query)
                await best_effort(
                    transport.send_text(job.chat_id, self._messages.song_failed),
                    action="report song failure",
                    job_id=job.id,
                )
            finally:
                self._cleanup(job)
        return job

    async def _execute(self, job: DownloadJob, transport: Transport) -> None:
        job.status = JobStatus.SEARCHING
        results = await self._source.search(job.query, self._search_limit)
        if not results:
            raise MediaNotFoundError(job.query)
        top = results[0]
        job.result_url = top.url
        job.result_title = top.title

        job.status = JobStatus.FETCHING
        self._temp_dir.mkdir(parents=True, exist_ok=True)
        job.local_path = await self._source.fetch_audio(top.url, self._temp_dir / job.id)
        job.status = JobStatus.READY

        await transport.send_audio(job.chat_id, job.local_path, self._mimetype)
        job.status = JobStatus.DONE
        logger.info("Song delivered", job_id=job.id, title=top.title)

    def _cleanup(self, job: DownloadJob) -> None:
        paths = set(self._temp_dir.glob(f"{job.id}*")) if self._temp_dir.exists() else set()
        if job.local_path is not None:
            paths.add(job.local_path)
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to remove temp file", path=str(path), err=str(exc))

    async def cancel_all(self) -> None:
        """Cancel in-flight jobs (their temp files are still removed)."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info("Cancelling song jobs", count=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    async def join(self) -> None:
        """Wait for every submitted job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
