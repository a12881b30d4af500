"""Unattended 24/7 playlist broadcast engine (ffmpeg feeder -> master -> RTMP)."""
