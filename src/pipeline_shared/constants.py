"""Shared constants for the Android pipeline."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Stage names
# ---------------------------------------------------------------------------
STAGE_CHECKOUT = "checkout"
STAGE_SETUP = "setup"
STAGE_DEPENDENCIES = "dependencies"
STAGE_LINT = "lint"
STAGE_BUILD = "build"
STAGE_UNIT_TEST = "unit_test"
STAGE_E2E_TEST = "e2e_test"
STAGE_DEPLOY = "deploy"
STAGE_NOTIFY = "notify"
STAGE_VALIDATION = "validation"

ALL_STAGES = [
    STAGE_CHECKOUT,
    STAGE_SETUP,
    STAGE_DEPENDENCIES,
    STAGE_LINT,
    STAGE_BUILD,
    STAGE_UNIT_TEST,
    STAGE_E2E_TEST,
    STAGE_DEPLOY,
    STAGE_NOTIFY,
]

STAGE_DISPLAY_NAMES: dict[str, str] = {
    STAGE_CHECKOUT: "Checkout",
    STAGE_SETUP: "Setup",
    STAGE_DEPENDENCIES: "Install Dependencies",
    STAGE_LINT: "Lint",
    STAGE_BUILD: "Build",
    STAGE_UNIT_TEST: "Unit Tests",
    STAGE_E2E_TEST: "E2E Tests",
    STAGE_DEPLOY: "Deploy",
    STAGE_NOTIFY: "Notify",
    STAGE_VALIDATION: "Validation",
}

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_DOCKER_REGISTRY = "43.88.89.25:5000"
DEFAULT_DOCKER_IMAGE = "react-native-android"
DEFAULT_DOCKER_TAG = "latest"
DEFAULT_GIT_BRANCH = "main"
DEFAULT_SLACK_CHANNEL = "#builds"
DEFAULT_NODE_VERSION = "20"
DEFAULT_JAVA_VERSION = "17"
DEFAULT_BUILD_TIMEOUT_MINUTES = 30
DEFAULT_TEST_TIMEOUT_MINUTES = 20
DEFAULT_SDK_ROOT = "/home/jenkins/android-sdk"
DEFAULT_GRADLE_JVM_ARGS = "-Xmx4g -XX:+HeapDumpOnOutOfMemoryError"

# Project layout (relative to the workspace root)
ANDROID_DIR = "android"
GRADLE_WRAPPER = "android/gradlew"
BUILD_OUTPUTS_DIR = "android/app/build/outputs"
FASTLANE_DIR = "android/fastlane"
TEST_RESULTS_DIR = "test-results"
JEST_REPORT = "test-results/jest.json"
JEST_COVERAGE_SUMMARY = "coverage/coverage-summary.json"
WDIO_CONFIG = "wdio.conf.js"
WDIO_REPORT = "test-results/wdio.json"

# Exit code reported when the command runner kills a process on timeout
TIMEOUT_EXIT_CODE = 124

# ---------------------------------------------------------------------------
# State persistence
# ---------------------------------------------------------------------------
STATE_DIR = ".android-pipeline"
OUTCOME_FILE = "PIPELINE_OUTCOME.json"
