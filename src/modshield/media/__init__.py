"""
Media fetching and decoding.

- **media_fetch.py**: Bounded, timed HTTP download of media bytes.
- **image_decoding.py**: Pillow decoding of images (including HEIF) and GIF frames.
- **video_decoder.py**: ffprobe metadata and subsampled, rescaled ffmpeg frames.
- **frame_channel.py**: Bounded thread-to-event-loop frame queue.
- **frame_source.py**: Lazy frame streams for images, GIFs and videos.
"""
