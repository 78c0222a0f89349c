"""Performance analyzer: build artifacts, assets and API-style code signals."""

import logging
import re

from repohealth.health.assessors import AssessmentContext, ScoreCard
from repohealth.health.config import HealthConfig
from repohealth.health.models import Dimension, Severity
from repohealth.health.probes import ProjectFiles, declared_js_dependencies, package_json

logger = logging.getLogger(__name__)

CODE_FILES = ("*.py", "*.js", "*.jsx", "*.ts", "*.tsx", "*.mjs", "*.go", "*.rs")
IMAGE_FILES = ("*.jpg", "*.jpeg", "*.png", "*.gif")
MODERN_IMAGE_FILES = ("*.webp", "*.avif")
SERVICE_WORKER_FILES = ("service-worker.js", "serviceWorker.js", "sw.js")
SCHEMA_FILES = ("*.sql", "*.prisma")
CACHE_CONFIG_FILES = ("nginx.conf", ".htaccess", "server.js", "app.js")

CODE_SPLIT_THRESHOLD = 1_048_576
UNOPTIMIZED_IMAGE_BYTES = 102_400

OPTIMIZING_TOOLS = re.compile(r"terser|uglify|minify|compression|gzip|brotli|esbuild|\bvite\b")
WEB_FRAMEWORKS = re.compile(r"\"(?:react|vue|@angular/core|svelte)\"")

SERVICE_PACKAGES = ("express", "koa", "fastify", "@hapi/hapi", "@nestjs/core")
SERVICE_CODE = re.compile(
    r"^\s*(?:from|import)\s+(?:flask|fastapi|django|aiohttp\.web|starlette)\b"
    r"|\bFastAPI\(|\bFlask\(__name__"
    r"|@app\.(?:route|get|post|put|delete)\("
    r"|\bexpress\(\)"
    r"|\bgin\.(?:Default|New)\("
    r"|\bhttp\.HandleFunc\("
    r"|\bactix_web\b|\baxum::Router\b",
    re.MULTILINE,
)
MONITORING_TOOLS = re.compile(
    r"newrelic|datadog|ddtrace|appdynamics|elastic-apm|elasticapm|sentry|opentelemetry|prometheus",
    re.IGNORECASE,
)
CUSTOM_METRICS = re.compile(r"performance\.mark|performance\.measure|console\.time")
RATE_LIMITING = re.compile(r"rate.?limit|throttl|slowapi|limiter", re.IGNORECASE)
PAGINATION = re.compile(r"\b(?:limit|offset|page|per_page|pageSize|page_size|cursor)\b")
LAZY_LOADING = re.compile(r"\blazy\b|Suspense|\bimport\(")
QUERY_CACHE = re.compile(r"redis|memcache|lru_cache|\bcache\b", re.IGNORECASE)


def is_service_project(files: ProjectFiles) -> bool:
    """Heuristically decide whether the project serves HTTP requests."""
    dependencies = declared_js_dependencies(files)
    if any(name in dependencies for name in SERVICE_PACKAGES):
        return True
    return files.any_match(SERVICE_CODE, CODE_FILES)


class PerformanceAnalyzer:
    """Looks for optimization signals in a project's artifacts and code.

    Most checks only add recommendations; the few hard deductions cover
    signals that can be read directly from the tree (oversized bundles and
    images, unindexed schemas, missing production build settings).
    """

    def __init__(self, config: HealthConfig):
        self.config = config

    def analyze(self, context: AssessmentContext) -> ScoreCard:
        card = ScoreCard(source=Dimension.PERFORMANCE.value)
        files = context.files
        service = is_service_project(files)
        card.details["service"] = service

        if files.file_exists("package.json"):
            self.check_bundles(card, files)
            self.check_build_tooling(card, files)
        self.check_images(card, files)
        self.check_caching(card, files)
        self.check_database(card, files)
        self.check_monitoring(card, files, service)
        if service:
            self.check_api(card, files)
        return card

    def check_bundles(self, card: ScoreCard, files: ProjectFiles) -> None:
        build_dir = "build" if files.dir_exists("build") else "dist" if files.dir_exists("dist") else None
        if build_dir is not None:
            scripts = list(files.iter_files(["*.js"], under=build_dir, honor_excludes=False))
            styles = list(files.iter_files(["*.css"], under=build_dir, honor_excludes=False))
            total = sum(p.stat().st_size for p in scripts + styles)
            card.details["bundle_bytes"] = total

            limit = self.config.max_bundle_kb * 1024
            large = [p for p in scripts if p.stat().st_size > limit]
            if large:
                card.deduct(
                    Severity.MEDIUM,
                    "bundle-size",
                    f"Found {len(large)} JavaScript bundle(s) larger than {self.config.max_bundle_kb}KB",
                    15,
                    location=files.relative(large[0]),
                )

            chunks = [p for p in scripts if "chunk" in p.name]
            if not chunks and total > CODE_SPLIT_THRESHOLD:
                card.deduct(
                    Severity.MEDIUM, "bundle-size", "No code splitting detected for large bundle", 10
                )

        if files.dir_exists("src"):
            lazy = files.count_matches(LAZY_LOADING, ("*.js", "*.jsx", "*.ts", "*.tsx"), under="src")
            if lazy == 0:
                card.recommend("Consider implementing lazy loading for better performance")

    def check_build_tooling(self, card: ScoreCard, files: ProjectFiles) -> None:
        manifest = files.read_text("package.json") or ""
        if not OPTIMIZING_TOOLS.search(manifest):
            card.deduct(
                Severity.MEDIUM,
                "build-optimization",
                "No compression or minification tools detected",
                10,
                location="package.json",
            )

        webpack = files.read_text("webpack.config.js")
        if webpack is not None and not re.search(r"mode.*production|optimization", webpack):
            card.deduct(
                Severity.MEDIUM,
                "build-optimization",
                "Webpack not configured for production optimization",
                10,
                location="webpack.config.js",
            )

        gitignore = files.read_text(".gitignore")
        if gitignore is not None and not re.search(r"\.cache", gitignore):
            card.recommend("Configure build tool caching for faster builds")

        scripts = package_json(files).get("scripts")
        build_script = scripts.get("build", "") if isinstance(scripts, dict) else ""
        if build_script and not re.search(r"parallel|concurrently", str(build_script)):
            card.recommend("Consider using parallel processing for build tasks")

    def check_images(self, card: ScoreCard, files: ProjectFiles) -> None:
        images = list(files.iter_files(IMAGE_FILES))
        if not images:
            return

        limit = self.config.max_image_kb * 1024
        sizes = [p.stat().st_size for p in images]
        large = sum(1 for size in sizes if size > limit)
        unoptimized = sum(1 for size in sizes if size > UNOPTIMIZED_IMAGE_BYTES)
        card.details["image_count"] = len(images)

        if large > 5:
            card.deduct(
                Severity.MEDIUM,
                "images",
                f"Found {large} images larger than {self.config.max_image_kb}KB",
                10,
            )
        if unoptimized > 10:
            card.recommend("Optimize images using tools like imagemin or sharp")
        if large and not files.count_files(MODERN_IMAGE_FILES):
            card.recommend("Consider using modern image formats (WebP, AVIF) for better compression")

    def check_caching(self, card: ScoreCard, files: ProjectFiles) -> None:
        if files.file_exists("package.json"):
            if files.count_files(SERVICE_WORKER_FILES):
                card.info("caching", "Good: Service worker detected for caching")
            elif WEB_FRAMEWORKS.search(files.read_text("package.json") or ""):
                card.recommend(
                    "Consider implementing a service worker for offline support and caching"
                )

        has_cache_headers = any(
            files.contains(name, r"cache-control|expires|etag", re.IGNORECASE)
            for name in CACHE_CONFIG_FILES
        )
        if not has_cache_headers:
            card.recommend("Configure appropriate cache headers for static assets")

    def check_database(self, card: ScoreCard, files: ProjectFiles) -> None:
        schemas = list(files.iter_text_files(SCHEMA_FILES))
        if schemas:
            if not any(re.search(r"index", content, re.IGNORECASE) for _, content in schemas):
                card.deduct(
                    Severity.MEDIUM,
                    "database",
                    "No database indexes found",
                    10,
                    location=files.relative(schemas[0][0]),
                )

        if files.any_match(QUERY_CACHE, CODE_FILES):
            card.info("database", "Good: Query caching solution detected")
        elif schemas:
            card.recommend("Consider implementing query result caching")

    def check_monitoring(self, card: ScoreCard, files: ProjectFiles, service: bool) -> None:
        monitored = files.any_match(
            MONITORING_TOOLS, (*CODE_FILES, "package.json", "*.toml", "requirements*.txt")
        ) or files.any_match(CUSTOM_METRICS, ("*.js", "*.ts", "*.jsx", "*.tsx"))
        if monitored:
            card.info("monitoring", "Good: Performance monitoring detected")
        elif service:
            card.deduct(
                Severity.LOW, "monitoring", "No performance monitoring tools detected", 5
            )
        else:
            card.info("monitoring", "No performance monitoring tools detected")

    def check_api(self, card: ScoreCard, files: ProjectFiles) -> None:
        if not files.any_match(RATE_LIMITING, CODE_FILES):
            card.deduct(Severity.LOW, "api", "No rate limiting detected for APIs", 5)

        if files.count_matches(PAGINATION, CODE_FILES) < 5:
            card.deduct(
                Severity.LOW, "api", "Little or no pagination found in API code", 3
            )
            card.recommend("Implement pagination for API endpoints returning lists")

        if files.file_exists("package.json") and "compression" not in declared_js_dependencies(files):
            card.recommend("Enable gzip compression for API responses")
