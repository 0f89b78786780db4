"""
FFmpeg command builder.

Turns input and output specifications plus the run configuration into an
ordered FFmpeg argument vector, including the tee muxer rewrite used when
several outputs share one encoding pass.
"""

import logging
import os
import re
from typing import List, Optional, Sequence, Tuple

from ffmpeg_driver.config import FFmpegConfig
from ffmpeg_driver.errors import ConfigurationError, InputNotFoundError
from ffmpeg_driver.models import (
    SEQUENCE_PLACEHOLDER,
    STDIO_MARKER,
    CommandPlan,
    DestinationKind,
    InputSpec,
    OutputSpec,
    SourceKind,
    check_output_handles,
)
from ffmpeg_driver.units import parse_options

logger = logging.getLogger(__name__)

# Codec selection: -c, -c:v, -codec:a ...
CODEC_OPTION = re.compile(r"^-(?:c|codec)(?::[avds])?$")

# Options that take a per-output stream specifier in tee mode
STREAM_SCOPED_OPTION = re.compile(r"^-(?:crf|b:v|b:a|q:v|q:a|filter:v|filter:a)$")

# Tee slave options, placed in the [..] prefix of a slave
MUXER_OPTION = re.compile(
    r"^(?:f|movflags|protocols|onfail|use_fifo|fifo_options|bsfs|"
    r"select_streams|ignore_unknown_streams)="
)

TEE_SEPARATOR = "|"


def _takes_value(tokens: Sequence[str], idx: int) -> bool:
    return idx + 1 < len(tokens) and bool(tokens[idx + 1]) and not tokens[idx + 1].startswith("-")


def extract_codec_tokens(tokens: Sequence[str]) -> List[str]:
    """
    Extract codec-selection tokens and their values from an option list.

    Args:
        tokens: Tokenised output options

    Returns:
        Codec flags with their values, in order
    """
    codec_tokens: List[str] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if CODEC_OPTION.match(token):
            if _takes_value(tokens, i):
                codec_tokens.extend([token, tokens[i + 1]])
                i += 1
            else:
                codec_tokens.append(token)
        i += 1
    return codec_tokens


def quote_tee_slave(slave: str) -> str:
    """Quote a tee slave so separators and colons in paths survive."""
    if slave.startswith("-"):
        return slave
    return "'" + slave.replace("'", "'\\''") + "'"


class FFmpegCommandBuilder:
    """
    Builds FFmpeg argument vectors from input and output specifications.

    Argument order is: global options, derived flags, global input options,
    per-input options with ``-i``, global output options, then outputs in
    either standard or tee form.
    """

    def __init__(self, config: FFmpegConfig):
        """
        Initialize command builder.

        Args:
            config: FFmpeg configuration
        """
        self.config = config

    def validate(
        self,
        inputs: Sequence[InputSpec],
        outputs: Sequence[OutputSpec],
        check_exists: bool = True,
    ) -> None:
        """
        Pre-flight checks run before any subprocess is spawned.

        Raises:
            ConfigurationError: If the binary, inputs or outputs are missing or invalid
            InputNotFoundError: If a file input does not exist
        """
        if not self.config.ffmpeg_binary or not self.config.ffmpeg_binary.strip():
            raise ConfigurationError("Missing path to ffmpeg binary")

        if not inputs:
            raise ConfigurationError("No input specified")
        for spec in inputs:
            if spec.kind is not SourceKind.HANDLE and not spec.path.strip():
                raise ConfigurationError("No input specified")

        if not outputs:
            raise ConfigurationError("No output specified")
        for spec in outputs:
            if spec.kind is not DestinationKind.HANDLE and not spec.path.strip():
                raise ConfigurationError("No output specified")

        check_output_handles(outputs)

        stdin_readers = [
            spec for spec in inputs if spec.kind in (SourceKind.HANDLE, SourceKind.STDIN)
        ]
        if len(stdin_readers) > 1:
            raise ConfigurationError(
                "Only one input may read from stdin (a stream handle or '-')"
            )

        stdout_writers = [
            spec for spec in outputs
            if spec.kind in (DestinationKind.HANDLE, DestinationKind.STDOUT)
        ]
        if len(stdout_writers) > 1:
            raise ConfigurationError(
                "Only one output may write to stdout (a stream handle or '-')"
            )

        if check_exists:
            for spec in inputs:
                if spec.kind is SourceKind.FILE and not os.path.exists(self._resolve(spec.path)):
                    raise InputNotFoundError(spec.path)

    def _resolve(self, path: str) -> str:
        if self.config.cwd and not os.path.isabs(path):
            return os.path.join(self.config.cwd, path)
        return path

    def build_command(
        self,
        inputs: Sequence[InputSpec],
        outputs: Sequence[OutputSpec],
        wants_stream: bool = False,
        check_exists: bool = True,
    ) -> CommandPlan:
        """
        Build the complete FFmpeg argument vector.

        Args:
            inputs: Input specifications, in stream index order
            outputs: Output specifications
            wants_stream: Whether stdout is consumed through the pass-through handle
            check_exists: Whether file inputs must exist on disk

        Returns:
            CommandPlan with the argument vector (binary excluded) and wiring

        Raises:
            ConfigurationError: If the configuration is invalid
            InputNotFoundError: If a file input does not exist
        """
        self.validate(inputs, outputs, check_exists=check_exists)

        tee = self._can_use_tee(outputs)
        if tee:
            output_args = self._build_tee_outputs(outputs)
        else:
            output_args = self._build_standard_outputs(outputs)

        args = [
            *self._build_global_options(),
            *parse_options(self.config.input_options),
            *self._build_inputs(inputs),
            *parse_options(self.config.output_options),
            *output_args,
        ]
        args = [arg for arg in args if arg]

        logger.debug(f"Built FFmpeg command: {self.config.ffmpeg_binary} {' '.join(args)}")

        return CommandPlan(
            args=args,
            tee=tee,
            input_handles=[s.source for s in inputs if s.kind is SourceKind.HANDLE],
            output_handles=[s.destination for s in outputs if s.kind is DestinationKind.HANDLE],
            reads_stdin=any(s.kind in (SourceKind.HANDLE, SourceKind.STDIN) for s in inputs),
            writes_stdout=wants_stream or any(
                s.kind in (DestinationKind.HANDLE, DestinationKind.STDOUT) for s in outputs
            ),
            current_file=primary_output_file(outputs),
        )

    def _build_global_options(self) -> List[str]:
        """Build global options followed by the derived flags."""
        options = parse_options(self.config.global_options)
        if self.config.hide_banner:
            options.append("-hide_banner")
        if self.config.overwrite_existing:
            options.append("-y")
        return options

    def _build_inputs(self, inputs: Sequence[InputSpec]) -> List[str]:
        """Build per-input options and ``-i`` sources."""
        args: List[str] = []
        for spec in inputs:
            args.extend(parse_options(spec.options))
            source = STDIO_MARKER if spec.kind is SourceKind.HANDLE else spec.path
            args.extend(["-i", source])
        return args

    def _build_standard_outputs(self, outputs: Sequence[OutputSpec]) -> List[str]:
        """Build one independent output clause per output."""
        args: List[str] = []
        for spec in outputs:
            args.extend(parse_options(spec.options))
            args.append(STDIO_MARKER if spec.kind is DestinationKind.HANDLE else spec.path)
        return args

    def _can_use_tee(self, outputs: Sequence[OutputSpec]) -> bool:
        """
        Check whether the outputs can share one pass through the tee muxer.

        Tee needs more than one output, no handle-backed output, and the same
        codec-selection tokens on every output.
        """
        if not self.config.tee or len(outputs) < 2:
            return False

        if any(spec.kind is DestinationKind.HANDLE for spec in outputs):
            logger.debug("Tee incompatible: contains stream handle outputs")
            return False

        first = extract_codec_tokens(parse_options(outputs[0].options))
        for idx, spec in enumerate(outputs[1:], start=1):
            current = extract_codec_tokens(parse_options(spec.options))
            if current != first:
                logger.debug(
                    f"Tee incompatible: first output codec opts {first}, "
                    f"output {idx} codec opts {current}; "
                    f"falling back to standard multiple outputs"
                )
                return False
        return True

    def _build_tee_outputs(self, outputs: Sequence[OutputSpec]) -> List[str]:
        """Build a single ``-f tee`` clause with per-output stream specifiers."""
        stream_options: List[str] = []
        slaves: List[str] = []

        for idx, spec in enumerate(outputs):
            tokens = parse_options(spec.options)
            muxer_options, scoped = self._split_tee_options(tokens, idx)
            stream_options.extend(scoped)

            slave = spec.path
            if muxer_options:
                slave = f"[{','.join(muxer_options)}]{slave}"
            slaves.append(quote_tee_slave(slave))

        return [
            *stream_options,
            "-map", "0:v",
            "-map", "0:a",
            "-f", "tee",
            TEE_SEPARATOR.join(slaves),
        ]

    def _split_tee_options(self, tokens: Sequence[str], idx: int) -> Tuple[List[str], List[str]]:
        """Separate muxer tokens from stream options, adding ``:idx`` specifiers."""
        muxer_options: List[str] = []
        scoped: List[str] = []
        i = 0
        while i < len(tokens):
            token = tokens[i]
            if MUXER_OPTION.match(token):
                muxer_options.append(token)
            elif _takes_value(tokens, i):
                if CODEC_OPTION.match(token) or STREAM_SCOPED_OPTION.match(token):
                    flag = f"{token}{idx}" if token.endswith(":") else f"{token}:{idx}"
                else:
                    flag = token
                scoped.extend([flag, tokens[i + 1]])
                i += 1
            else:
                scoped.append(token)
            i += 1
        return muxer_options, scoped

    def get_command_string(
        self,
        inputs: Sequence[InputSpec],
        outputs: Sequence[OutputSpec],
    ) -> str:
        """
        Get FFmpeg command as a single string (useful for logging).

        Returns:
            Space-separated command string, binary included
        """
        plan = self.build_command(inputs, outputs, check_exists=False)
        return " ".join([self.config.ffmpeg_binary, *plan.args])


def primary_output_file(outputs: Sequence[OutputSpec]) -> Optional[str]:
    """
    First file output usable as the current file.

    Outputs with a numbered-sequence placeholder are segment patterns,
    never a single current file.
    """
    for spec in outputs:
        path = spec.file
        if path is not None:
            return None if SEQUENCE_PLACEHOLDER.search(path) else path
    return None


def create_command_builder(config: Optional[FFmpegConfig] = None) -> FFmpegCommandBuilder:
    """
    Factory function to create a command builder.

    Args:
        config: Optional FFmpeg configuration (creates default if not provided)

    Returns:
        FFmpegCommandBuilder instance
    """
    if config is None:
        from ffmpeg_driver.config import get_config
        config = get_config()

    return FFmpegCommandBuilder(config)
