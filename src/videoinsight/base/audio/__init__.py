from .acquisition import (
    TARGET_SAMPLE_RATE,
    AudioAcquirer,
    AudioAcquisitionResult,
    AudioDecoder,
    FFmpegFileDecoder,
    FFmpegPipeDecoder,
)
from .pcm import PcmBuffer, downmix, resample
from .wav import WavHeader, decode_wav, encode_pcm_buffer, encode_wav, read_wav_header, save_wav

__all__ = [
    "PcmBuffer",
    "downmix",
    "resample",
    "WavHeader",
    "encode_wav",
    "encode_pcm_buffer",
    "decode_wav",
    "read_wav_header",
    "save_wav",
    "TARGET_SAMPLE_RATE",
    "AudioAcquirer",
    "AudioAcquisitionResult",
    "AudioDecoder",
    "FFmpegPipeDecoder",
    "FFmpegFileDecoder",
]
