# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
gerritview: a transport-independent read client for Gerrit Code Review.

Changes, revisions and comments are read over either the REST API or the
SSH ``gerrit query`` command, chosen from the git remote URL, and returned
as one shared data model.
"""

__version__ = "0.1.0"
