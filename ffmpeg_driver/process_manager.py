"""
FFmpeg process manager.

Runs one FFmpeg invocation at a time: builds the command, spawns the
process with its stdin/stdout wiring, turns stderr into progress, writing
and completion events, and enforces the stall timeout.
"""

import asyncio
import codecs
import inspect
import logging
import os
import signal
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import psutil

from ffmpeg_driver.command_builder import FFmpegCommandBuilder
from ffmpeg_driver.config import FFmpegConfig
from ffmpeg_driver.errors import (
    ConfigurationError,
    FFmpegProcessError,
    FFmpegTimeoutError,
    StreamOpenError,
)
from ffmpeg_driver.events import EventBus, EventKind, Handler
from ffmpeg_driver.fanout import CHUNK_SIZE, PassThrough, StreamFanout, is_cleanup_noise
from ffmpeg_driver.models import (
    SEQUENCE_PLACEHOLDER,
    STDIO_MARKER,
    CommandPlan,
    DestinationKind,
    DoneResult,
    ExitStatus,
    InputLike,
    InputSpec,
    OutputLike,
    OutputSpec,
    ProgressEvent,
    ProgressSample,
    SourceKind,
    WritingInfo,
    check_output_handles,
)
from ffmpeg_driver.parsers import FFmpegOutputParser, ParsedChunk, compute_percent
from ffmpeg_driver.probe import ProbeResult, probe
from ffmpeg_driver.units import secs_to_timer
from ffmpeg_driver.watchdog import StallWatchdog

logger = logging.getLogger(__name__)

# Poll interval while waiting for stream handles to open
HANDLE_POLL_INTERVAL = 0.05


class ProcessState(str, Enum):
    """FFmpeg process states."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"


def _handle_is_open(handle: Any) -> bool:
    if isinstance(handle, asyncio.StreamWriter):
        return not handle.is_closing()
    return not getattr(handle, "closed", False)


class FFmpegProcessManager:
    """
    Manages the lifecycle of a single FFmpeg invocation.

    Features:
    - Fluent configuration of inputs, outputs and options between runs
    - Typed progress / writing / done / exit events through an EventBus
    - Stdin feeding from readable handles and stdout fan-out to sinks
    - Stall watchdog killing FFmpeg when progress stops
    - Two-phase completion: ``done`` is always delivered before ``exit``
    """

    def __init__(
        self,
        config: Optional[FFmpegConfig] = None,
        *,
        input: Optional[InputLike] = None,
        inputs: Optional[Sequence[InputLike]] = None,
        output: Optional[OutputLike] = None,
        outputs: Optional[Sequence[OutputLike]] = None,
        pipe: bool = False,
        cwd: Optional[str] = None,
        global_options: Optional[List[str]] = None,
        input_options: Optional[List[str]] = None,
        output_options: Optional[List[str]] = None,
        overwrite_existing: Optional[bool] = None,
        hide_banner: Optional[bool] = None,
        tee: Optional[bool] = None,
        timeout: Optional[float] = None,
        command_builder: Optional[FFmpegCommandBuilder] = None,
    ):
        """
        Initialize process manager.

        Args:
            config: FFmpeg configuration (creates default if not provided)
            input: Single input (mutually exclusive with ``inputs``)
            inputs: Multiple inputs
            output: Single output (mutually exclusive with ``outputs``)
            outputs: Multiple outputs
            pipe: Write the output to stdout
            cwd: Working directory for FFmpeg
            global_options: Appended to the configured global options
            input_options: Appended to the configured input options
            output_options: Appended to the configured output options
            overwrite_existing: Pass ``-y``
            hide_banner: Pass ``-hide_banner``
            tee: Use the tee muxer for compatible multiple outputs
            timeout: Stall timeout in milliseconds
            command_builder: Command builder instance (creates default if not provided)

        Raises:
            ConfigurationError: If mutually exclusive options are combined
        """
        if input is not None and inputs is not None:
            raise ConfigurationError(
                "Cannot use both 'input' and 'inputs' options. Use either 'input' "
                "for single input or 'inputs' for multiple inputs."
            )
        if output is not None and outputs is not None:
            raise ConfigurationError(
                "Cannot use both 'output' and 'outputs' options. Use either 'output' "
                "for single output or 'outputs' for multiple outputs."
            )

        if config is None:
            from ffmpeg_driver.config import get_config

            config = get_config()

        update: Dict[str, Any] = {}
        if cwd is not None:
            update["cwd"] = cwd
        if global_options:
            update["global_options"] = [*config.global_options, *global_options]
        if input_options:
            update["input_options"] = [*config.input_options, *input_options]
        if output_options:
            update["output_options"] = [*config.output_options, *output_options]
        if overwrite_existing is not None:
            update["overwrite_existing"] = overwrite_existing
        if hide_banner is not None:
            update["hide_banner"] = hide_banner
        if tee is not None:
            update["tee"] = tee
        if timeout is not None:
            update["timeout_ms"] = timeout

        self.config = config.model_copy(update=update) if update else config
        self._default_config = self.config

        if command_builder is None:
            command_builder = FFmpegCommandBuilder(self.config)
        self.command_builder = command_builder
        self.command_builder.config = self.config

        self.events = EventBus()
        self._lock = asyncio.Lock()

        # Process tracking
        self.process: Optional[asyncio.subprocess.Process] = None
        self.running = False
        self.state = ProcessState.IDLE
        self.error: Optional[BaseException] = None
        self.last_error: Optional[BaseException] = None
        self.returncode: Optional[int] = None
        self.exit_status: Optional[ExitStatus] = None
        self.current_file: Optional[str] = None
        self.final_sizes = None
        self.parser = FFmpegOutputParser()

        self._plan: Optional[CommandPlan] = None
        self._status_task: Optional[asyncio.Task] = None
        self._io_tasks: List[asyncio.Task] = []
        self._stdin_task: Optional[asyncio.Task] = None
        self._fanout: Optional[StreamFanout] = None
        self._completion: Optional[asyncio.Event] = None
        self._watchdog: Optional[StallWatchdog] = None
        self._started_at: Optional[float] = None
        self._stream = PassThrough()
        self._wants_stream = False

        self.inputs: List[InputSpec] = []
        self.outputs: List[OutputSpec] = []
        if inputs is not None:
            self.set_inputs(inputs)
        elif input is not None:
            self.set_input(input)
        if outputs is not None:
            self.set_outputs(outputs)
        elif output is not None:
            self.set_output(output)
        if pipe:
            self.set_pipe(True)

        logger.debug("FFmpeg Process Manager initialized")

    # Events

    def on(self, kind: EventKind, handler: Handler) -> Handler:
        """Subscribe to an event; see EventBus.subscribe."""
        return self.events.subscribe(kind, handler)

    def off(self, kind: EventKind, handler: Handler) -> bool:
        """Unsubscribe from an event; see EventBus.unsubscribe."""
        return self.events.unsubscribe(kind, handler)

    # Configuration

    def _ensure_idle(self) -> None:
        if self.process is not None or self.state is not ProcessState.IDLE:
            raise ConfigurationError("Cannot change configuration while FFmpeg is running")

    def _update_config(self, **changes: Any) -> "FFmpegProcessManager":
        self._ensure_idle()
        self.config = self.config.model_copy(update=changes)
        self.command_builder.config = self.config
        return self

    def set_cwd(self, cwd: str) -> "FFmpegProcessManager":
        return self._update_config(cwd=cwd)

    def set_overwrite_existing(self, overwrite_existing: bool) -> "FFmpegProcessManager":
        return self._update_config(overwrite_existing=overwrite_existing)

    def set_hide_banner(self, hide_banner: bool) -> "FFmpegProcessManager":
        return self._update_config(hide_banner=hide_banner)

    def use_tee(self, tee: bool = True) -> "FFmpegProcessManager":
        return self._update_config(tee=tee)

    def set_timeout(self, ms: Optional[float]) -> "FFmpegProcessManager":
        """Set the stall timeout in milliseconds (None disables it)."""
        return self._update_config(timeout_ms=ms)

    def set_global_options(self, options: List[str]) -> "FFmpegProcessManager":
        """Append global options."""
        return self._update_config(global_options=[*self.config.global_options, *options])

    def set_input_options(self, options: List[str]) -> "FFmpegProcessManager":
        """Append options placed before the first input."""
        return self._update_config(input_options=[*self.config.input_options, *options])

    def set_output_options(self, options: List[str]) -> "FFmpegProcessManager":
        """Append options placed before the first output."""
        return self._update_config(output_options=[*self.config.output_options, *options])

    def set_pipe(self, pipe: bool) -> "FFmpegProcessManager":
        """Write the output to stdout (``-``), or drop a stdout output."""
        if pipe:
            return self.set_output(STDIO_MARKER)
        self._ensure_idle()
        self.outputs = [spec for spec in self.outputs if spec.kind is not DestinationKind.STDOUT]
        return self

    def set_input(self, input: InputLike) -> "FFmpegProcessManager":
        self._ensure_idle()
        if len(self.inputs) > 1:
            raise ConfigurationError(
                "Cannot use set_input() when multiple inputs are already configured. "
                "Use set_inputs() or clear_inputs() first."
            )
        self.inputs = [InputSpec.coerce(input)]
        return self

    def set_inputs(self, inputs: Sequence[InputLike]) -> "FFmpegProcessManager":
        self._ensure_idle()
        self.inputs = [InputSpec.coerce(item) for item in inputs]
        return self

    def add_input(self, input: InputLike) -> "FFmpegProcessManager":
        self._ensure_idle()
        self.inputs.append(InputSpec.coerce(input))
        return self

    def clear_inputs(self) -> "FFmpegProcessManager":
        self._ensure_idle()
        self.inputs = []
        return self

    def set_output(self, output: OutputLike) -> "FFmpegProcessManager":
        self._ensure_idle()
        if len(self.outputs) > 1:
            raise ConfigurationError(
                "Cannot use set_output() when multiple outputs are already configured. "
                "Use set_outputs() or clear_outputs() first."
            )
        return self.set_outputs([output])

    def set_outputs(self, outputs: Sequence[OutputLike]) -> "FFmpegProcessManager":
        self._ensure_idle()
        specs = [OutputSpec.coerce(item) for item in outputs]
        check_output_handles(specs)
        self.outputs = specs
        return self

    def add_output(self, output: OutputLike) -> "FFmpegProcessManager":
        self._ensure_idle()
        specs = [*self.outputs, OutputSpec.coerce(output)]
        check_output_handles(specs)
        self.outputs = specs
        return self

    def clear_outputs(self) -> "FFmpegProcessManager":
        self._ensure_idle()
        self.outputs = []
        return self

    @property
    def input_count(self) -> int:
        return len(self.inputs)

    @property
    def output_count(self) -> int:
        return len(self.outputs)

    @property
    def input(self) -> Any:
        """Source of the first input, or None."""
        return self.inputs[0].source if self.inputs else None

    @input.setter
    def input(self, value: InputLike) -> None:
        self.set_input(value)

    @property
    def output(self) -> Any:
        """Destination of the first output, or None."""
        return self.outputs[0].destination if self.outputs else None

    @output.setter
    def output(self, value: OutputLike) -> None:
        self.set_output(value)

    @property
    def log(self) -> str:
        """Accumulated stderr of the current or last run."""
        return self.parser.log

    def to_stream(self) -> PassThrough:
        """
        Readable stream receiving FFmpeg's stdout.

        Must be called before run().
        """
        self._wants_stream = True
        return self._stream

    # Lifecycle

    async def run(self) -> Optional[asyncio.subprocess.Process]:
        """
        Start FFmpeg.

        Returns the existing process when already running. Configuration and
        validation errors are raised; errors after validation are captured and
        surface through the ERROR event and done().

        Returns:
            The spawned process, or None if spawning failed

        Raises:
            ConfigurationError: If the configuration is invalid
            InputNotFoundError: If a file input does not exist
        """
        async with self._lock:
            if self.process is not None or self.state is not ProcessState.IDLE:
                logger.debug("Returning existing FFmpeg process")
                return self.process

            plan = self.command_builder.build_command(
                self.inputs, self.outputs, wants_stream=self._wants_stream
            )

            self._plan = plan
            self.parser.reset()
            self.error = None
            self.returncode = None
            self.exit_status = None
            self.final_sizes = None
            self.current_file = plan.current_file
            self._completion = asyncio.Event()
            self._started_at = time.time()
            if self._stream.closed:
                self._stream = PassThrough()
            self.state = ProcessState.STARTING

            self.events.emit(EventKind.START, list(plan.args))

            if self._multiplexed:
                self.events.emit(
                    EventKind.WRITING,
                    [
                        WritingInfo(file=spec.path or "", output_index=idx)
                        for idx, spec in enumerate(self.outputs)
                    ],
                )

            try:
                await self._wait_for_handles(plan)
                self.process = await self._spawn(plan)
            except (StreamOpenError, OSError) as e:
                logger.error(f"Failed to start FFmpeg: {e}")
                self._handle_runtime_error(e)
            else:
                self.running = True
                self.state = ProcessState.RUNNING
                logger.info(f"FFmpeg started (PID: {self.process.pid})")
                self._start_io(plan)
                if self.config.timeout_ms:
                    self._watchdog = StallWatchdog(self.config.timeout_ms, self._on_stall)
                    self._watchdog.start()

            self._status_task = asyncio.create_task(self._await_status())
            return self.process

    @property
    def _multiplexed(self) -> bool:
        return self.config.tee and len(self.outputs) > 1

    async def _wait_for_handles(self, plan: CommandPlan) -> None:
        """Wait until every stream handle is open, bounded by stream_open_timeout."""
        loop = asyncio.get_running_loop()
        for direction, handles in (("input", plan.input_handles), ("output", plan.output_handles)):
            for handle in handles:
                deadline = loop.time() + self.config.stream_open_timeout
                while not _handle_is_open(handle):
                    if loop.time() >= deadline:
                        raise StreamOpenError(f"Timeout waiting for {direction} stream to open")
                    await asyncio.sleep(HANDLE_POLL_INTERVAL)

    async def _spawn(self, plan: CommandPlan) -> asyncio.subprocess.Process:
        if plan.input_handles:
            stdin = asyncio.subprocess.PIPE
        elif plan.reads_stdin:
            stdin = None
        else:
            stdin = asyncio.subprocess.DEVNULL

        stdout = asyncio.subprocess.PIPE if plan.writes_stdout else asyncio.subprocess.DEVNULL

        logger.debug(f"Command: {self.config.ffmpeg_binary} {' '.join(plan.args)}")
        return await asyncio.create_subprocess_exec(
            self.config.ffmpeg_binary,
            *plan.args,
            cwd=self.config.cwd,
            stdin=stdin,
            stdout=stdout,
            stderr=asyncio.subprocess.PIPE,
        )

    def _start_io(self, plan: CommandPlan) -> None:
        process = self.process
        self._io_tasks = []
        self._stdin_task = None
        self._fanout = None

        if process.stderr is not None:
            self._io_tasks.append(asyncio.create_task(self._read_stderr(process.stderr)))

        if process.stdout is not None:
            sinks: List[Any] = list(plan.output_handles)
            has_stdout_marker = any(
                spec.kind is DestinationKind.STDOUT for spec in self.outputs
            )
            if self._wants_stream or has_stdout_marker:
                sinks.append(self._stream)
            self._fanout = StreamFanout(process.stdout, sinks, on_error=self._handle_runtime_error)
            self._io_tasks.append(asyncio.create_task(self._fanout.pump()))

        if plan.input_handles and process.stdin is not None:
            self._stdin_task = asyncio.create_task(
                self._feed_stdin(plan.input_handles[0], process.stdin)
            )
            self._io_tasks.append(self._stdin_task)

    async def _feed_stdin(self, source: Any, stdin: asyncio.StreamWriter) -> None:
        """Copy a readable handle into FFmpeg's stdin, closing stdin at EOF."""
        is_async = inspect.iscoroutinefunction(source.read)
        try:
            while True:
                if is_async:
                    chunk = await source.read(CHUNK_SIZE)
                else:
                    chunk = await asyncio.to_thread(source.read, CHUNK_SIZE)
                if not chunk:
                    break
                if isinstance(chunk, str):
                    chunk = chunk.encode()
                stdin.write(chunk)
                await stdin.drain()
        except Exception as e:
            if is_cleanup_noise(e):
                logger.debug(f"FFmpeg stdin closed early (ignored): {e}")
            else:
                logger.error(f"Error writing FFmpeg stdin: {e}")
                self._handle_runtime_error(e)
        finally:
            if not stdin.is_closing():
                stdin.close()

    async def _read_stderr(self, stderr: asyncio.StreamReader) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stderr.read(4096)
            if not data:
                break
            self._handle_chunk(self.parser.feed(decoder.decode(data)))
        tail = decoder.decode(b"", final=True)
        if tail:
            self._handle_chunk(self.parser.feed(tail))
        self._handle_chunk(self.parser.flush())

    def _handle_chunk(self, chunk: ParsedChunk) -> None:
        for event in chunk.events:
            if isinstance(event, ProgressSample):
                if self._watchdog is not None:
                    self._watchdog.touch()
                self._emit_progress(event)
            else:
                self._emit_writing(event)
        if chunk.final_sizes is not None:
            self.final_sizes = chunk.final_sizes

    def _emit_progress(self, sample: ProgressSample) -> None:
        duration = self.parser.state.duration
        percent = compute_percent(sample.time, duration)
        logger.debug(
            f"Progress: time={secs_to_timer(sample.time)} frame={sample.frame} "
            f"speed={sample.speed} percent={percent}"
        )

        targets = list(enumerate(self.outputs)) if len(self.outputs) > 1 else [(0, self.outputs[0])]
        for idx, spec in targets:
            self.events.emit(
                EventKind.PROGRESS,
                ProgressEvent.from_sample(
                    sample,
                    duration=duration,
                    percent=percent,
                    output_index=idx,
                    file=spec.file,
                ),
            )

    def _output_index_for(self, path: str) -> Optional[int]:
        """Index of the file output FFmpeg reports writing to, by path or file name."""
        for idx, spec in enumerate(self.outputs):
            if spec.file is None:
                continue
            if spec.file == path or os.path.basename(spec.file) == os.path.basename(path):
                return idx
        return None

    def _emit_writing(self, path: str) -> None:
        logger.debug(f"Writing: {path}")
        idx = self._output_index_for(path)

        if self._multiplexed:
            if idx is not None:
                matches = [WritingInfo(file=self.outputs[idx].file, output_index=idx)]
            else:
                matches = [
                    WritingInfo(file=spec.path or "", output_index=i)
                    for i, spec in enumerate(self.outputs)
                ]
            self.events.emit(EventKind.WRITING, matches)
            return

        if (
            len(self.outputs) == 1
            and self.outputs[0].kind is DestinationKind.FILE
            and not SEQUENCE_PLACEHOLDER.search(path)
        ):
            self.current_file = path
        self.events.emit(EventKind.WRITING, WritingInfo(file=path, output_index=idx or 0))

    def _on_stall(self) -> None:
        """Watchdog expiry: kill FFmpeg and record the timeout."""
        process = self.process
        if process is not None and process.returncode is None:
            logger.warning(f"Killing stalled FFmpeg process {process.pid}")
            try:
                process.kill()
            except ProcessLookupError:
                logger.debug(f"Process {process.pid} already exited")
        self._handle_runtime_error(FFmpegTimeoutError(self.config.timeout_ms))

    def _handle_runtime_error(self, error: BaseException) -> None:
        """Record an error and emit it only when someone listens."""
        self.error = error
        self.last_error = error
        if self.events.listener_count(EventKind.ERROR) > 0:
            self.events.emit(EventKind.ERROR, error)
        else:
            logger.error(f"FFmpeg error (no error listeners): {error}")

    async def _await_status(self) -> None:
        """Wait for FFmpeg to exit and deliver completion in two phases."""
        code: Optional[int] = None
        process = self.process

        # Phase 1: exit status, completion data and DONE
        if process is not None:
            code = await process.wait()
            self.state = ProcessState.DRAINING

            # Nothing more can be written to an exited process, and the input
            # handle may never deliver EOF
            if self._stdin_task is not None and not self._stdin_task.done():
                logger.debug("FFmpeg exited before its input was drained; stopping stdin feed")
                self._stdin_task.cancel()
            # The remaining stdout is bounded by the pipe buffer
            if self._fanout is not None:
                self._fanout.release()

            results = await asyncio.gather(*self._io_tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"FFmpeg I/O task failed: {result}")
                    self._handle_runtime_error(result)
            self._io_tasks = []
            self._stdin_task = None
            self._fanout = None
            self.returncode = code

            if code == 1:
                detail = self.parser.concise_error()
                logger.error(f"FFmpeg failed with exit code {code}: {detail}")
                self._handle_runtime_error(FFmpegProcessError(code, detail))
            elif self.error is None:
                logger.debug(f"done: {self.current_file}")
                self._emit_done()

        self._completion.set()

        # Phase 2: deferred by one loop iteration, so callbacks scheduled by
        # DONE handlers run before EXIT
        await asyncio.sleep(0)
        await self._completion.wait()
        self._finish(code)

    def _emit_done(self) -> None:
        if self._multiplexed:
            self.events.emit(EventKind.DONE, self._done_results())
        else:
            self.events.emit(
                EventKind.DONE,
                DoneResult(file=self.current_file, sizes=self.final_sizes, output_index=0),
            )

    def _done_results(self) -> List[DoneResult]:
        return [
            DoneResult(file=spec.file, sizes=self.final_sizes, output_index=idx)
            for idx, spec in enumerate(self.outputs)
        ]

    def _finish(self, code: Optional[int]) -> None:
        if self._watchdog is not None:
            self._watchdog.stop()
            self._watchdog = None
        self.process = None
        self.running = False
        self.state = ProcessState.IDLE
        self.exit_status = ExitStatus(code=code, error=self.error)
        logger.info(f"FFmpeg exited with code {code}")
        self.events.emit(EventKind.EXIT, self.exit_status)

    async def stop(self, sig: int = signal.SIGTERM) -> None:
        """
        Stop the running FFmpeg process.

        Sends ``sig``, waits up to ``process_timeout`` seconds and then kills
        the process. Always leaves the manager idle. No-op when not running.

        Args:
            sig: Signal to send (SIGTERM by default, SIGKILL to force)
        """
        process = self.process
        if not self.running or process is None:
            logger.debug("No running FFmpeg process to stop")
            return

        logger.info(f"Stopping FFmpeg (PID: {process.pid}) with signal {sig}")
        try:
            if process.returncode is None:
                try:
                    process.send_signal(sig)
                except ProcessLookupError:
                    logger.debug(f"Process {process.pid} already exited")

            try:
                await asyncio.wait_for(process.wait(), timeout=self.config.process_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Process {process.pid} did not terminate gracefully, force killing")
                process.kill()
                await process.wait()

            if self._status_task is not None:
                await asyncio.shield(self._status_task)

        except OSError as e:
            # EXIT still comes from the status task once the process is reaped
            logger.error(f"Error stopping FFmpeg process {process.pid}: {e}")
            self._handle_runtime_error(e)

        finally:
            if self._watchdog is not None:
                self._watchdog.stop()
                self._watchdog = None
            self.process = None
            self.running = False
            self.state = ProcessState.IDLE

    async def done(self) -> DoneResult:
        """
        Wait for the run to finish and return the primary output.

        Raises:
            The error captured during the run, once
        """
        if self._status_task is not None:
            await asyncio.shield(self._status_task)

        if self.error is not None:
            error, self.error = self.error, None
            raise error

        return self._primary_result()

    def _primary_result(self) -> DoneResult:
        if all(spec.kind is not DestinationKind.FILE for spec in self.outputs):
            return DoneResult(file=None, sizes=self.final_sizes)
        if len(self.outputs) > 1:
            return self._done_results()[0]
        return DoneResult(file=self.current_file, sizes=self.final_sizes, output_index=0)

    async def exit(self) -> ExitStatus:
        """Wait for the run to finish and return its exit status without raising."""
        if self._status_task is not None:
            await asyncio.shield(self._status_task)
        if self.exit_status is not None:
            return self.exit_status
        return ExitStatus(code=self.returncode, error=self.error)

    async def reset(self) -> None:
        """Stop if running and restore the construction configuration."""
        await self.stop()

        if self._status_task is not None and not self._status_task.done():
            self._status_task.cancel()
        for task in self._io_tasks:
            task.cancel()

        self.config = self._default_config
        self.command_builder.config = self.config
        self.inputs = []
        self.outputs = []
        self.process = None
        self.running = False
        self.state = ProcessState.IDLE
        self.error = None
        self.last_error = None
        self.returncode = None
        self.exit_status = None
        self.current_file = None
        self.final_sizes = None
        self.parser.reset()
        self._plan = None
        self._status_task = None
        self._io_tasks = []
        self._stdin_task = None
        self._fanout = None
        self._completion = None
        self._started_at = None
        self._stream = PassThrough()
        self._wants_stream = False
        logger.debug("FFmpeg Process Manager reset")

    # Inspection

    async def probe(self, index: int = 0) -> ProbeResult:
        """
        Probe one of the configured inputs with ffprobe.

        Raises:
            ConfigurationError: If the index is out of range or the input is a stream
            ProbeError: If probing fails
        """
        if index >= len(self.inputs):
            raise ConfigurationError(
                f"Input index {index} out of range ({len(self.inputs)} inputs)"
            )
        spec = self.inputs[index]
        if spec.kind in (SourceKind.HANDLE, SourceKind.STDIN):
            raise ConfigurationError("Probe can only inspect path inputs, not streams")
        return await probe(spec.path, self.config)

    def is_running(self) -> bool:
        return self.running and self.state is ProcessState.RUNNING

    def get_status(self) -> Dict:
        """
        Get current status of the FFmpeg process.

        Returns:
            Dictionary with process status information
        """
        process = self.process
        if process is None:
            return {
                "state": self.state,
                "pid": None,
                "running": False,
                "current_file": self.current_file,
                "uptime_seconds": 0,
                "last_error": str(self.last_error) if self.last_error else None,
            }

        status = {
            "state": self.state,
            "pid": process.pid,
            "running": self.running,
            "current_file": self.current_file,
            "uptime_seconds": time.time() - self._started_at if self._started_at else 0,
            "last_error": str(self.last_error) if self.last_error else None,
        }

        sample = self.parser.last_sample
        if sample is not None:
            status["progress"] = {
                "time": sample.time,
                "frame": sample.frame,
                "speed": sample.speed,
                "percent": compute_percent(sample.time, self.parser.state.duration),
            }

        try:
            proc = psutil.Process(process.pid)
            status["cpu_percent"] = proc.cpu_percent(interval=None)
            status["memory_mb"] = proc.memory_info().rss / 1024 / 1024
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

        return status
