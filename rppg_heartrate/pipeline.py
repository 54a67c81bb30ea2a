"""
Heart-rate estimation pipeline.

Algorithm
---------
1. Append the extracted sample (with its timestamp and resync flag) to a
   rolling buffer spanning the last ``window_seconds`` at the measured
   sampling rate.
2. Optionally classify the sample with the hysteresis noise validator; a
   rejected sample is stored as a resync so its step is absorbed.
3. Once the buffer spans a full window, on every frame:

   a. remove resync steps (denoise),
   b. remove slow drift with smoothness-priors detrending,
   c. for the ``xminay`` method, combine the three colour channels,
   d. smooth with a repeated moving average (kernel ≈ rate / 3),
   e. take the DFT magnitude and pick the strongest bin inside the
      42 – 240 BPM band.

4. Aggregate the per-frame estimates and report mean / min / max once per
   ``sampling_frequency`` seconds.

The pipeline is synchronous and single-threaded: one :meth:`process` call
per frame, serialised by the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import numpy as np

from rppg_heartrate.aggregator import BpmAggregator, BpmEstimate, BpmReport
from rppg_heartrate.chrominance import xminay
from rppg_heartrate.diagnostics import DiagnosticLog
from rppg_heartrate.filters import denoise, detrend, moving_average
from rppg_heartrate.noise_validator import NoiseValidator
from rppg_heartrate.sample_buffer import Sample, SampleBuffer
from rppg_heartrate.spectral import (
    HIGH_BPM,
    LOW_BPM,
    SEC_PER_MIN,
    band_limits,
    estimate_bpm,
    time_to_frequency,
)

logger = logging.getLogger(__name__)

METHODS = ("green", "xminay")

ReportCallback = Callable[[BpmReport], None]


@dataclass(frozen=True)
class PipelineConfig:
    """
    Construction-time settings.

    Parameters
    ----------
    time_base:
        Seconds per timestamp unit.
    sampling_frequency:
        Reporting interval in seconds.
    rescan_interval:
        Seconds between detector rescans; see
        :meth:`HeartRatePipeline.rescan_due`.
    window_seconds:
        Analysis window length in seconds.
    low_bpm, high_bpm:
        Heart-rate search band.
    detrend_lambda:
        Smoothness-priors regularisation; *None* uses the measured rate.
    smoothing_passes, smoothing_divisor:
        Moving average applied ``smoothing_passes`` times with kernel
        ``round(rate / smoothing_divisor)``.
    method:
        ``"green"`` (single channel) or ``"xminay"`` (chrominance).
    channel:
        Channel index used by the green method for 3-channel samples.
    bandpass_order:
        Order of the Butterworth mask used by the xminay method.
    reject_noise:
        Treat samples rejected by the noise validator as resyncs.
    """

    time_base: float = 0.001
    sampling_frequency: float = 1.0
    rescan_interval: float = 1.0
    window_seconds: float = 10.0
    low_bpm: float = LOW_BPM
    high_bpm: float = HIGH_BPM
    detrend_lambda: Optional[float] = None
    smoothing_passes: int = 3
    smoothing_divisor: float = 3.0
    method: str = "green"
    channel: int = 1
    bandpass_order: int = 8
    reject_noise: bool = False

    def __post_init__(self) -> None:
        positive = {
            "time_base": self.time_base,
            "sampling_frequency": self.sampling_frequency,
            "rescan_interval": self.rescan_interval,
            "window_seconds": self.window_seconds,
            "smoothing_divisor": self.smoothing_divisor,
            "bandpass_order": self.bandpass_order,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if not 0 < self.low_bpm < self.high_bpm:
            raise ValueError(
                f"invalid BPM band [{self.low_bpm}, {self.high_bpm}]"
            )
        if self.detrend_lambda is not None and self.detrend_lambda <= 0:
            raise ValueError(f"detrend_lambda must be positive, got {self.detrend_lambda}")
        if self.smoothing_passes < 0:
            raise ValueError(f"smoothing_passes must be >= 0, got {self.smoothing_passes}")
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS}, got {self.method!r}")
        if self.channel not in (0, 1, 2):
            raise ValueError(f"channel must be 0, 1 or 2, got {self.channel}")

    @property
    def channels(self) -> int:
        """Number of channels analysed by the selected method."""
        return 3 if self.method == "xminay" else 1


class HeartRatePipeline:
    """
    Frame-driven heart-rate estimator.

    Parameters
    ----------
    config:
        Pipeline settings (defaults to :class:`PipelineConfig`).
    on_report:
        Called with each :class:`BpmReport` as it is emitted.
    diagnostics:
        Optional open :class:`DiagnosticLog` receiving CSV rows.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        on_report: Optional[ReportCallback] = None,
        diagnostics: Optional[DiagnosticLog] = None,
    ) -> None:
        self.config = config if config is not None else PipelineConfig()
        self.on_report = on_report
        self.diagnostics = diagnostics

        self._buffer = SampleBuffer(self.config.time_base, self.config.window_seconds)
        self._validator = NoiseValidator(self.config.channels)
        self._aggregator = BpmAggregator(self.config.sampling_frequency, self.config.time_base)

        self._last_bpm: Optional[float] = None
        self._last_report: Optional[BpmReport] = None
        self._last_accepted: bool = True
        self._last_scan_time: Optional[int] = None
        self._width: Optional[int] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(
        self,
        value: Union[float, Sequence[float]],
        timestamp: int,
        resync: bool = False,
    ) -> Optional[BpmReport]:
        """
        Feed one frame's sample and return a report if one is due.

        Parameters
        ----------
        value:
            Scalar brightness, or ``(r, g, b)`` channel means.
        timestamp:
            Frame time in ``time_base`` units; non-decreasing.
        resync:
            True on frames where the tracker re-acquired the face region.
        """
        sample_value = self._check_value(value)

        if self.config.reject_noise:
            window = self._analysed(self._window_with(sample_value))
            self._last_accepted = self._validator.is_accepted(window)
        else:
            self._last_accepted = True

        self._buffer.append(
            Sample(sample_value, int(timestamp), bool(resync) or not self._last_accepted)
        )

        if self._buffer.is_ready():
            bpm = self._estimate(int(timestamp))
            if bpm is not None:
                estimate = BpmEstimate(int(timestamp), bpm)
                self._aggregator.add(estimate)
                self._last_bpm = bpm
                if self.diagnostics is not None:
                    self.diagnostics.estimate(estimate)

        report = self._aggregator.poll(int(timestamp))
        if report is not None:
            self._last_report = report
            if self.diagnostics is not None:
                self.diagnostics.report(report)
            if self.on_report is not None:
                self.on_report(report)
        return report

    def rescan_due(self, timestamp: int) -> bool:
        """
        True when ``rescan_interval`` has elapsed since the last rescan.

        The face tracker calls this once per frame; a *True* answer starts a
        new interval, and the frame after the rescan should be passed to
        :meth:`process` with ``resync=True``.
        """
        if (
            self._last_scan_time is None
            or (timestamp - self._last_scan_time) * self.config.time_base >= self.config.rescan_interval
        ):
            self._last_scan_time = timestamp
            return True
        return False

    def reset(self) -> None:
        """Discard all buffered samples, estimates and validation state."""
        self._buffer.clear()
        self._validator.reset()
        self._aggregator.reset()
        self._last_bpm = None
        self._last_report = None
        self._last_accepted = True
        self._last_scan_time = None
        self._width = None

    @property
    def sample_rate(self) -> float:
        return self._buffer.rate

    @property
    def is_ready(self) -> bool:
        return self._buffer.is_ready()

    @property
    def buffer_fill_ratio(self) -> float:
        """How much of the analysis window is buffered (0 – 1)."""
        if len(self._buffer) == 0:
            return 0.0
        return min(1.0, len(self._buffer) / self._buffer.rate / self.config.window_seconds)

    @property
    def buffer_length(self) -> int:
        return len(self._buffer)

    @property
    def last_bpm(self) -> Optional[float]:
        return self._last_bpm

    @property
    def last_report(self) -> Optional[BpmReport]:
        return self._last_report

    @property
    def last_sample_accepted(self) -> bool:
        return self._last_accepted

    @property
    def pending_estimates(self) -> int:
        return len(self._aggregator.pending)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _estimate(self, time: int) -> Optional[float]:
        """Run the filter chain over the window and return the BPM, if any."""
        cfg = self.config
        fps = self._buffer.rate
        raw = self._analysed(self._buffer_matrix())
        n = len(raw)

        denoised = denoise(raw, self._buffer.resync_flags())
        lam = cfg.detrend_lambda if cfg.detrend_lambda is not None else fps
        detrended = detrend(denoised, lam)

        if cfg.method == "xminay":
            cutin = n * cfg.low_bpm / SEC_PER_MIN / fps
            cutoff = n * cfg.high_bpm / SEC_PER_MIN / fps
            if cutin <= 0 or cutoff <= cutin:
                logger.debug("Window too short for bandpass: n=%d fps=%.2f", n, fps)
                return None
            combined = xminay(
                detrended[:, 0], detrended[:, 1], detrended[:, 2],
                cutin, cutoff, cfg.bandpass_order,
            )
        else:
            combined = detrended

        kernel = max(1, int(round(fps / cfg.smoothing_divisor)))
        smoothed = moving_average(combined, cfg.smoothing_passes, kernel)

        power = time_to_frequency(smoothed, magnitude=True)
        bpm = estimate_bpm(power, fps, cfg.low_bpm, cfg.high_bpm)

        if self.diagnostics is not None:
            self.diagnostics.signal(
                time, self._stage(raw), self._stage(denoised), self._stage(detrended), smoothed
            )
            low, high = band_limits(n, fps, cfg.low_bpm, cfg.high_bpm)
            self.diagnostics.spectrum(time, power, low, high)
        return bpm

    def _check_value(self, value: Union[float, Sequence[float]]):
        arr = np.asarray(value, dtype=np.float64)
        if arr.ndim == 0:
            width = 1
        elif arr.shape == (3,):
            width = 3
        else:
            raise ValueError(f"sample must be a scalar or 3 channels, got shape {arr.shape}")

        if width != 3 and self.config.method == "xminay":
            raise ValueError("xminay method needs (r, g, b) samples")
        if self._width is not None and width != self._width:
            raise ValueError("cannot mix scalar and 3-channel samples")
        self._width = width
        return float(arr) if width == 1 else tuple(float(v) for v in arr)

    def _buffer_matrix(self) -> np.ndarray:
        """Buffered values as a 2-D ``(n, channels)`` array."""
        values = self._buffer.values()
        if values.ndim == 1:
            values = values[:, np.newaxis]
        return values

    def _window_with(self, value) -> np.ndarray:
        """Buffered values plus the candidate *value* as the newest row."""
        row = np.atleast_1d(np.asarray(value, dtype=np.float64))[np.newaxis, :]
        if len(self._buffer) == 0:
            return row
        return np.vstack([self._buffer_matrix(), row])

    def _analysed(self, matrix: np.ndarray) -> np.ndarray:
        """Select the channel(s) the configured method works on."""
        if self.config.method == "xminay":
            return matrix
        if matrix.shape[1] == 1:
            return matrix[:, 0]
        return matrix[:, self.config.channel]

    def _stage(self, a: np.ndarray) -> np.ndarray:
        """1-D view of a filter stage for the diagnostic signal file."""
        return a[:, self.config.channel] if a.ndim > 1 else a
