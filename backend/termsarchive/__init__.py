"""Track terms documents over time and record them in git-backed histories."""
