# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Pytest configuration for lp4k unit tests."""

import logging
import os

import pytest

from lp4k.registry import NodeclaimRegistry


def pytest_configure():
    logging.basicConfig(
        level=os.getenv('LP4K_UNIT_TEST_LOGLEVEL', 'DEBUG'),
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@pytest.fixture
def registry():
    return NodeclaimRegistry()
