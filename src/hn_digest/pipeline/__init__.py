"""Resumable daily task pipeline: executor operations and the state machine."""
