#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Module to interpolate environment variables into the service configuration.
"""

import os
import re

SPECIAL_INTERPOLATION = r"(?<!\\)(\$(\{(((?!AWS::)[^}]+)(\:[+-]{1}))([^}]*)\}))"
IF_UNDEFINED = r":-"
IF_DEFINED = r":+"


def expandvars(value, default=None, skip_escaped=True):
    """
    Expand environment variables of form $var and ${var}.
       If parameter 'skip_escaped' is True, all escaped variable references
       (i.e. preceded by backslashes) are skipped.
       Unknown variables are set to 'default'. If 'default' is None,
       they are left unchanged.
       ${var:-word} returns word when var is unset or empty, ${var:+word} returns word when var is set.
       ${AWS::xxx} are CloudFormation pseudo parameters and never replaced.
    """

    def replace_var(match):
        if re.match(SPECIAL_INTERPOLATION, match.group(0)):
            groups = re.findall(SPECIAL_INTERPOLATION, match.group(0))
            var_name = groups[0][-3]
            if groups[0][-2] == IF_UNDEFINED:
                return os.environ.get(var_name) or expandvars(
                    groups[0][-1], default, skip_escaped
                )
            elif groups[0][-2] == IF_DEFINED:
                if os.environ.get(var_name):
                    return expandvars(groups[0][-1], default, skip_escaped)
                return ""
        return os.environ.get(
            match.group(2) or match.group(1),
            match.group(0) if default is None else default,
        )

    re_string = (r"(?<!\\)" if skip_escaped else "") + r"\$(\w+|\{(?!AWS::)([^}]*)\})"
    return re.sub(re_string, replace_var, value)


def interpolate_content(content, default=None):
    """
    Walks the loaded configuration and expands the variables of every string value.

    :param content: the loaded configuration, or a part of it
    :param str default: value to use for undefined variables
    :return: a copy of the content with the variables expanded
    """
    if isinstance(content, dict):
        return {
            key: interpolate_content(value, default) for key, value in content.items()
        }
    elif isinstance(content, list):
        return [interpolate_content(value, default) for value in content]
    elif isinstance(content, str):
        return expandvars(content, default)
    return content
