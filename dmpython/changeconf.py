#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Line oriented editor for ``key = value`` and ``key: value`` files

Only the lines that are changed are rewritten. Comments, blank lines,
unknown options and their order are kept as they are, so that editing
``/etc/nsswitch.conf`` or ``/etc/sssd/sssd.conf`` never drops content the
migration does not own.
"""

import fcntl
import logging
import os

logger = logging.getLogger(__name__)


def open_locked(filename, perms):
    """Open (creating if needed) and exclusively lock a file for update"""
    fd = os.open(filename, os.O_RDWR | os.O_CREAT, perms)
    try:
        fcntl.lockf(fd, fcntl.LOCK_EX)
    except OSError:
        os.close(fd)
        raise
    return os.fdopen(fd, "r+")


class ChangeConf:
    def __init__(self, name, assignment=" = ", comment="#",
                 section_delimiters=("[", "]")):
        self.progname = name
        self.assignment = assignment
        self.comment = comment
        self.section_delimiters = section_delimiters

    def match_section(self, line):
        start, end = self.section_delimiters
        line = line.strip()
        if start and line.startswith(start) and line.endswith(end):
            return line[len(start):-len(end)].strip()
        return None

    def parse_line(self, line, section):
        stripped = line.strip()
        if not stripped:
            return {'type': 'empty', 'section': section, 'line': line}
        if stripped.startswith(self.comment):
            return {'type': 'comment', 'section': section, 'line': line}
        separator = self.assignment.strip()
        name, sep, value = stripped.partition(separator)
        if not sep:
            return {'type': 'unknown', 'section': section, 'line': line}
        return {'type': 'option', 'section': section, 'name': name.strip(),
                'value': value.strip(), 'line': line}

    def parse(self, f):
        opts = []
        section = None
        for line in f:
            line = line.rstrip("\n")
            name = self.match_section(line)
            if name is not None:
                section = name
                opts.append({'type': 'section', 'section': name,
                             'name': name, 'line': line})
                continue
            opts.append(self.parse_line(line, section))
        return opts

    def sections(self, opts):
        return [o['name'] for o in opts if o['type'] == 'section']

    def find_option(self, opts, name, section=None):
        """Return the first option entry called @name in @section"""
        for opt in opts:
            if (opt['type'] == 'option' and opt['name'] == name and
                    opt['section'] == section):
                return opt
        return None

    def format_option(self, name, value):
        return "%s%s%s" % (name, self.assignment, value)

    def set_option(self, opts, name, value, section=None):
        """Set @name to @value, appending it to @section when missing"""
        opt = self.find_option(opts, name, section)
        if opt is not None:
            opt['value'] = value
            opt['line'] = self.format_option(name, value)
            return opts

        new = {'type': 'option', 'section': section, 'name': name,
               'value': value, 'line': self.format_option(name, value)}
        # insert after the last non-empty line of the section
        index = None
        for i, o in enumerate(opts):
            if o['section'] == section and o['type'] != 'empty':
                index = i
        if index is None:
            if section is not None:
                start, end = self.section_delimiters
                opts.append({'type': 'section', 'section': section,
                             'name': section,
                             'line': '%s%s%s' % (start, section, end)})
            opts.append(new)
        else:
            opts.insert(index + 1, new)
        return opts

    def dump(self, opts):
        return "".join(o['line'] + "\n" for o in opts)

    def change_conf(self, filename, changes, file_perms=0o644):
        """
        Apply option changes to an existing configuration file

        :param filename: path to the file
        :param changes: list of (section, name, value) tuples; section is
            None for files without sections
        :return: the new content
        """
        with open_locked(filename, file_perms) as f:
            opts = self.parse(f)
            for section, name, value in changes:
                self.set_option(opts, name, value, section)
            output = self.dump(opts)
            f.seek(0)
            f.truncate(0)
            f.write(output)
        logger.debug("Updating configuration file %s", filename)
        logger.debug("%s", output)
        return output

    def new_conf(self, filename, content, file_perms=0o644):
        """Replace the content of @filename"""
        with open_locked(filename, file_perms) as f:
            f.seek(0)
            f.truncate(0)
            f.write(content)
        os.chmod(filename, file_perms)
        logger.debug("Writing configuration file %s", filename)
        logger.debug("%s", content)
        return content
