# SPDX-License-Identifier: GPL-3.0-only
# SPDX-FileCopyrightText: Copyright (c) 2026 Andrew Wyatt (Fewtarius)

"""
BundlePush - Over-the-Air Bundle Updates

Client-side core that decides which script bundle an application runs,
tracks whether a freshly applied bundle has been confirmed healthy, and
rolls back to the last known-good bundle when a new one crashes.
"""

__version__ = "20261019.1"
__author__ = "The BundlePush Authors"
