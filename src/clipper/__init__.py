"""
Key-Moment Clipper - turn a long-form video into short captioned clips.

A pipeline for:
- Extracting audio from videos
- Transcribing speech (AssemblyAI or OpenAI Whisper)
- Picking key moments from the transcript with GPT
- Synthesizing sentence-timed subtitles for each moment
- Cutting clips and burning the captions in with ffmpeg
"""

__version__ = "0.1.0"
