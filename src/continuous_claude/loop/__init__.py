"""Sequential agent iteration loop.

One agent invocation at a time: iterations share the git working tree and
branches, so they must never overlap. The loop is built from small pieces
that are each testable without a real subprocess:

- ``result_classifier`` turns raw stdout + exit code into an outcome kind.
- ``completion`` counts consecutive completion-signal hits.
- ``executor`` runs the agent once through an injected backend.
- ``git_workflow`` handles branch/commit/PR side effects through an injected
  command runner; its failures never stop the loop.
- ``engine`` owns the run state and decides termination.
"""
