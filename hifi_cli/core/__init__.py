"""
Core application engine: download orchestration and playback.

The `DownloadManager` owns the transfers in flight and the conversion step;
the `DownloadQueue` is the view of every requested job on top of it. The
`PlaybackEngine` is the state machine for previewing tracks.
"""
