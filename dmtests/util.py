#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
Common utility functions and classes for unit tests.
"""

import collections
import os

from dmpython import dmutil
from dmclient.install.presenter import Presenter

Call = collections.namedtuple('Call', 'args stdin nolog')


def result(output='', returncode=0, error_output=''):
    return (output, error_output, returncode)


class RunRecorder:
    """Replacement of dmutil.run that records calls and never executes

    Responses are registered per argv prefix. Several responses for one
    prefix are returned in order; the last one is repeated.
    """
    def __init__(self):
        self.calls = []
        self.responses = []

    def respond(self, prefix, *results):
        self.responses.insert(0, ([str(p) for p in prefix], list(results)))

    def __call__(self, args, stdin=None, raiseonerr=True, nolog=(),
                 env=None, capture_output=False, skip_output=False,
                 cwd=None, capture_error=False, encoding=None):
        args = [str(a) for a in args]
        self.calls.append(Call(args, stdin, tuple(nolog)))
        output, error_output, returncode = result()
        for prefix, results in self.responses:
            if args[:len(prefix)] == prefix:
                if len(results) > 1:
                    output, error_output, returncode = results.pop(0)
                else:
                    output, error_output, returncode = results[0]
                break
        if returncode != 0 and raiseonerr:
            raise dmutil.CalledProcessError(returncode, repr(args), output,
                                            error_output)
        return dmutil._RunResult(
            output if capture_output else None,
            error_output if capture_error else None,
            returncode)

    @property
    def commands(self):
        return [call.args for call in self.calls]

    def called(self, *prefix):
        prefix = [str(p) for p in prefix]
        return [call for call in self.calls
                if call.args[:len(prefix)] == prefix]


class ScriptedPresenter(Presenter):
    """Presenter answering questions from a script

    Questions whose prompt contains a key of @answers get that answer,
    every other question its default. The prompts are kept in ``asked``.
    """
    def __init__(self, answers=None, interactive=False, passwords=()):
        super(ScriptedPresenter, self).__init__(interactive)
        self.answers = answers or {}
        self.passwords = list(passwords)
        self.asked = []

    def ask(self, prompt, default):
        self.asked.append(prompt)
        for key, answer in self.answers.items():
            if key in prompt:
                return answer
        return default

    def ask_password(self, prompt):
        self.asked.append(prompt)
        if not self.passwords:
            return None
        return dmutil.SecretHolder(self.passwords.pop(0))


def write_file(path, content, mode=None):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w') as f:
        f.write(content)
    if mode is not None:
        os.chmod(path, mode)
    return path


def read_file(path):
    with open(path) as f:
        return f.read()


class FakeEngine:
    """MigrationEngine returning ``outcome`` without running any step"""
    outcome = None
    instances = []

    def __init__(self, context, steps=None, collect_input=None,
                 failure_policy=None, log_file=None):
        self.context = context
        self.collect_input = collect_input
        self.failure_policy = failure_policy
        self.log_file = log_file
        self.cleaned = False
        self.instances.append(self)

    def run(self):
        return self.outcome

    def cleanup(self):
        self.cleaned = True
