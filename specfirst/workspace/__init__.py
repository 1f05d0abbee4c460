"""Working-directory lifecycle: a live spec run plus an archive of past runs."""
