# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""cirun - lightweight CI pipeline orchestrator."""

__version__ = "0.3.0"
