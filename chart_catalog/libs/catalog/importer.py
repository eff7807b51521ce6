"""
Chart File Importer

Enriches stored charts with their icons and with the README, values and
schema files of every chart version, using a fixed-size worker pool.
"""

import io
import logging
import posixpath
import tarfile
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, List
from urllib.parse import urlsplit

from ..core.constants import CatalogConstants, ErrorMessages
from ..core.exceptions import ChartCatalogError, DownloadError
from ..core.models import Chart, ChartFiles, ChartVersion, Repo
from ..core.protocols import AssetStoreProvider, HTTPProvider
from ..core.utils import make_chart_id
from ..repository.chart_repository import resolve_chart_url

logger = logging.getLogger(__name__)

ChartFile = CatalogConstants.ChartFile


def is_url_domain_equal(first: str, second: str) -> bool:
    """Check whether two URLs share scheme and host; unparsable URLs never match"""
    a, b = urlsplit(first), urlsplit(second)
    if not a.scheme or not a.netloc or not b.scheme or not b.netloc:
        return False
    return a.scheme == b.scheme and a.netloc == b.netloc


def extract_chart_files(archive: bytes) -> Dict[str, str]:
    """
    Extract README, values and schema files from a chart archive

    Only files in the chart's root directory are considered; names are
    matched case-insensitively.

    Args:
        archive: gzipped tar content

    Returns:
        Dict mapping lowercase file name to file content

    Raises:
        tarfile.TarError: If the archive cannot be read
    """
    wanted = set(str(f) for f in ChartFile.get_all_files())
    files: Dict[str, str] = {}
    with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as tar:
        for member in tar:
            if len(member.name.split('/')) > 2 or not member.isfile():
                continue
            filename = posixpath.basename(member.name).lower()
            if filename not in wanted:
                continue
            extracted = tar.extractfile(member)
            if extracted is not None:
                files[filename] = extracted.read().decode('utf-8', errors='replace')
    return files


class FileImporter:
    """Imports chart icons and files into the catalog store"""

    def __init__(self, manager: AssetStoreProvider, session: HTTPProvider,
                 workers: int = CatalogConstants.DEFAULT_SYNC_WORKERS, pass_credentials: bool = False):
        """
        Initialize the importer

        Args:
            manager: Catalog store receiving icons and files
            session: HTTP session used for downloads
            workers: Number of worker threads
            pass_credentials: Send the repository credentials to every icon host
        """
        self.manager = manager
        self.session = session
        self.workers = max(1, workers)
        self.pass_credentials = pass_credentials

    def fetch_files(self, charts: List[Chart], repo: Repo) -> Dict[str, int]:
        """
        Import icons and files of charts

        All icon jobs finish before any file job starts. File jobs for the
        latest version of every chart are queued before the older versions.
        A failing job is logged and does not stop the others.

        Args:
            charts: Charts to enrich, each with its versions newest first
            repo: Repository the charts belong to

        Returns:
            Dict with counts of imported icons, imported files and failed jobs
        """
        results = {'icons': 0, 'files': 0, 'failed': 0}
        logger.debug(f"Starting {self.workers} import workers for {len(charts)} charts")

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="chart-import") as pool:
            icon_jobs = [pool.submit(self.fetch_and_import_icon, chart, repo) for chart in charts]
            self._collect(icon_jobs, 'icons', results)

            latest = []
            remaining = []
            for chart in charts:
                if not chart.chart_versions:
                    continue
                latest.append((chart.name, chart.chart_versions[0]))
                remaining.extend((chart.name, cv) for cv in chart.chart_versions[1:])
            file_jobs = [
                pool.submit(self.fetch_and_import_files, name, repo, cv)
                for name, cv in latest + remaining
            ]
            self._collect(file_jobs, 'files', results)

        logger.info(f"Imported {results['icons']} icons and {results['files']} chart files "
                    f"for repository {repo.name} ({results['failed']} failed)")
        return results

    @staticmethod
    def _collect(jobs: List[Future], kind: str, results: Dict[str, int]) -> None:
        wait(jobs)
        for job in jobs:
            if job.result():
                results[kind] += 1
            else:
                results['failed'] += 1

    def fetch_and_import_icon(self, chart: Chart, repo: Repo) -> bool:
        """
        Download the icon of a chart and store it

        Returns:
            bool: False if the import failed; charts without icon count as imported
        """
        if not chart.icon:
            logger.info(f"Icon not found for chart {chart.name}")
            return True

        send_auth = self.pass_credentials or (bool(repo.auth_header) and is_url_domain_equal(chart.icon, repo.url))
        try:
            data, content_type = self.session.get_with_content_type(chart.icon, with_auth=send_auth)
            self.manager.update_icon(repo, data, content_type, chart.id)
        except ChartCatalogError as e:
            logger.error(f"Failed to import icon for chart {chart.name}: {e}")
            return False
        logger.debug(f"Imported icon for chart {chart.name}")
        return True

    def fetch_and_import_files(self, name: str, repo: Repo, chart_version: ChartVersion) -> bool:
        """
        Download a chart version archive and store its files

        Versions whose files are already stored with the same digest are skipped.

        Returns:
            bool: False if the import failed
        """
        chart_id = make_chart_id(repo.name, name)
        files_id = f"{chart_id}-{chart_version.version}"

        if self.manager.files_exist(repo, files_id, chart_version.digest):
            logger.debug(f"Skipping existing files for {name} {chart_version.version}")
            return True

        try:
            if not chart_version.urls:
                raise DownloadError(str(ErrorMessages.RepositoryError.NO_URLS).format(name=name))
            url = resolve_chart_url(repo.url, chart_version.urls[0])
            logger.debug(f"Fetching files for {name} {chart_version.version} from {url}")
            files = extract_chart_files(self.session.get(url))
        except (ChartCatalogError, tarfile.TarError, OSError, EOFError) as e:
            logger.error(f"Failed to import files for {name} {chart_version.version}: {e}")
            return False

        for key in ChartFile.get_all_files():
            if str(key) not in files:
                logger.info(f"{key} not found for {name} {chart_version.version}")

        chart_files = ChartFiles(
            id=files_id,
            repo=Repo(name=repo.name, namespace=repo.namespace, url=repo.url),
            digest=chart_version.digest,
            readme=files.get(str(ChartFile.README), ""),
            values=files.get(str(ChartFile.VALUES), ""),
            schema=files.get(str(ChartFile.SCHEMA), ""),
        )
        try:
            self.manager.insert_files(chart_id, chart_files)
        except ChartCatalogError as e:
            logger.error(f"Failed to store files for {name} {chart_version.version}: {e}")
            return False
        return True
