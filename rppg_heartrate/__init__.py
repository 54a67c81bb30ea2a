"""
rPPG Heart Rate — remote photoplethysmography pulse estimation.
Brightness samples taken from a tracked face region are buffered, cleaned
(denoise, detrend, smooth) and analysed in the frequency domain; the
dominant in-band peak gives the heart rate in BPM.
"""

from rppg_heartrate.aggregator import BpmAggregator, BpmEstimate, BpmReport
from rppg_heartrate.extraction import mean_green, mean_rgb
from rppg_heartrate.pipeline import HeartRatePipeline, PipelineConfig
from rppg_heartrate.sample_buffer import Sample, SampleBuffer

__version__ = "0.1.0"
__author__ = "rppg_heartrate"

__all__ = [
    "BpmAggregator",
    "BpmEstimate",
    "BpmReport",
    "HeartRatePipeline",
    "PipelineConfig",
    "Sample",
    "SampleBuffer",
    "mean_green",
    "mean_rgb",
]
