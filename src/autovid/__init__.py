"""autovid — captioned video composition.

Compose an ordered list of timed scenes, a narration track and
word-level caption timing into an mp4, rendering animated captions
(karaoke, word-by-word, sentence, minimal) in sync with the audio.
"""
