#!/usr/bin/env python3
# Copyright (C) 2025 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import logging
import sys

logger = logging.getLogger("docker-tcp-counter")

_FORMAT = "%%(levelname)5s: %s%%(message)s"


def configure_logger(verbosity: int) -> None:
    """Warnings always reach stderr, -v adds INFO, -vv DEBUG, -vvv library DEBUG"""
    handler = logging.StreamHandler(sys.stderr)
    if verbosity >= 2:
        handler.setFormatter(logging.Formatter(_FORMAT % "(line %(lineno)3d) "))
        level = logging.DEBUG
    else:
        handler.setFormatter(logging.Formatter(_FORMAT % ""))
        level = logging.INFO if verbosity == 1 else logging.WARNING

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)

    for library in ("urllib3", "docker"):
        library_logger = logging.getLogger(library)
        library_logger.handlers.clear()
        if verbosity >= 3:
            library_logger.addHandler(handler)
            library_logger.setLevel(logging.DEBUG)
        else:
            library_logger.setLevel(logging.WARNING)
