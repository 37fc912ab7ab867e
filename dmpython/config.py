#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

import logging
import os
from configparser import RawConfigParser, ParsingError
from copy import copy
# pylint: disable=deprecated-module
from optparse import (
    Option, Values, OptionParser, IndentedHelpFormatter, OptionValueError)
# pylint: enable=deprecated-module

from dmplatform.paths import paths

logger = logging.getLogger(__name__)

CONFIG_SECTION = 'global'

FAILURE_POLICIES = ('continue', 'abort')


class DMFormatter(IndentedHelpFormatter):
    """Our own optparse formatter that indents multiple lined usage string."""
    def format_usage(self, usage):
        usage_string = "Usage:"
        spacing = " " * len(usage_string)
        lines = usage.split("\n")
        ret = "%s %s\n" % (usage_string, lines[0])
        for line in lines[1:]:
            ret += "%s %s\n" % (spacing, line)
        return ret


def check_ip_option(option, opt, value):
    from dmpython.dmutil import CheckedIPAddress

    try:
        return CheckedIPAddress(value)
    except ValueError as e:
        raise OptionValueError(
            "option %s: invalid IP address %s: %s" % (opt, value, e))


def check_domain_option(option, opt, value):
    from dmpython.dmutil import validate_domain_name

    try:
        return validate_domain_name(value)
    except ValueError as e:
        raise OptionValueError("option %s: invalid domain: %s" % (opt, e))


class DMOption(Option):
    """
    optparse.Option subclass with support of options labeled as
    security-sensitive such as passwords.
    """
    ATTRS = Option.ATTRS + ["sensitive"]
    TYPES = Option.TYPES + ("ip", "domain")
    TYPE_CHECKER = copy(Option.TYPE_CHECKER)
    TYPE_CHECKER["ip"] = check_ip_option
    TYPE_CHECKER["domain"] = check_domain_option


class DMOptionParser(OptionParser):
    """
    optparse.OptionParser subclass that uses DMOption by default
    for storing options.
    """
    def __init__(self,
                 usage=None,
                 option_list=None,
                 option_class=DMOption,
                 version=None,
                 conflict_handler="error",
                 description=None,
                 formatter=None,
                 add_help_option=True,
                 prog=None):
        OptionParser.__init__(self, usage, option_list, option_class,
                              version, conflict_handler, description,
                              formatter, add_help_option, prog)

    def get_safe_opts(self, opts):
        """
        Returns all options except those with sensitive=True in the same
        fashion as parse_args would
        """
        all_opts_dict = {
            o.dest: o for o in self._get_all_options()
            if hasattr(o, 'sensitive')
        }
        safe_opts_dict = {}

        for option, value in opts.__dict__.items():
            if option not in all_opts_dict:
                continue
            if all_opts_dict[option].sensitive is not True:
                safe_opts_dict[option] = value

        return Values(safe_opts_dict)


def default_config():
    """Built-in defaults, evaluated against the current path namespace"""
    return dict(
        state_file=paths.MIGRATION_STATE,
        automator_state_file=paths.AUTOMATOR_STATE,
        rollback_dir=paths.ROLLBACK_DIR,
        home_dir=paths.HOME_DIR,
        report_dir=paths.REPORT_DIR,
        join_settle_delay=5,
        service_settle_delay=5,
        post_reboot_settle_delay=30,
        reboot_delay=10,
        automate_reboot_delay=15,
        failure_policy='abort',
        computer_ou='Computers',
        backup_account='backup',
    )


class MigrationConfig:
    """Tunables of a migration run

    Values come from the built-in defaults, overridden by the ``[global]``
    section of the configuration file. Every key is exposed as an attribute.
    """
    def __init__(self, **overrides):
        self._values = default_config()
        for key, value in overrides.items():
            self._set(key, value)

    def _set(self, key, value):
        if key not in self._values:
            raise KeyError(key)
        default = self._values[key]
        if isinstance(default, int) and not isinstance(value, int):
            value = int(value)
        if key == 'failure_policy' and value not in FAILURE_POLICIES:
            raise ValueError(
                "failure_policy must be one of %s, got %r" %
                (', '.join(FAILURE_POLICIES), value))
        self._values[key] = value

    def __getattr__(self, name):
        try:
            return self.__dict__['_values'][name]
        except KeyError:
            raise AttributeError(name)

    def keys(self):
        return sorted(self._values)

    def merge_from_file(self, config_file):
        """
        Merge variables from ``config_file`` over the current values.

        If ``config_file`` does not exist or is not a regular file, or if
        there is an error parsing it, ``None`` is returned. Otherwise a
        ``(num_set, num_total)`` tuple is returned. Unknown keys and values
        that do not convert are logged and skipped.
        """
        if not os.path.isfile(config_file):
            return None
        parser = RawConfigParser()
        try:
            parser.read(config_file)
        except ParsingError as e:
            logger.warning("Ignoring unparsable %s: %s", config_file, e)
            return None
        if not parser.has_section(CONFIG_SECTION):
            return 0, 0
        items = parser.items(CONFIG_SECTION)
        i = 0
        for (key, value) in items:
            try:
                self._set(key, value)
            except KeyError:
                logger.warning("Unknown key '%s' in %s", key, config_file)
                continue
            except ValueError as e:
                logger.warning("Bad value for '%s' in %s: %s",
                               key, config_file, e)
                continue
            i += 1
        logger.debug("Loaded %d of %d settings from %s",
                     i, len(items), config_file)
        return i, len(items)

    @classmethod
    def load(cls, config_file=None):
        config = cls()
        if config_file is None:
            config_file = paths.DM_DEFAULT_CONF
        config.merge_from_file(config_file)
        return config
