"""Command line client for the file share server.

Examples:
    python cli.py upload report.pdf --ttl 7200 --password secret --tags work,q3
    python cli.py list
    python cli.py search invoice --tag work
    python cli.py download 3f2a... --password secret
    UPLOAD_SERVER=http://my-server:8080 python cli.py stats
"""
import argparse
import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

DEFAULT_SERVER = "http://localhost:8080"
DEFAULT_TTL = 3600


class ClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024


def format_duration(seconds: int) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class FileShareClient:
    def __init__(self, server: str = DEFAULT_SERVER, client: Optional[httpx.Client] = None,
                 timeout: float = 30.0):
        self.server = server.rstrip("/")
        self.client = client or httpx.Client(base_url=self.server, timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        headers.setdefault("Accept", "application/json")
        try:
            response = self.client.request(method, path, headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise ClientError(f"Cannot connect to server at {self.server}: {str(e)}")

        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ClientError(f"{detail} (HTTP {response.status_code})", response.status_code)
        return response

    def upload(self, path: Path, ttl: Optional[int] = None, max_downloads: Optional[int] = None,
               password: str = "", description: str = "", tags: str = "") -> Dict[str, Any]:
        data = {"ttl": str(ttl or DEFAULT_TTL)}
        if max_downloads:
            data["max_downloads"] = str(max_downloads)
        if password:
            data["password"] = password
        if description:
            data["description"] = description
        if tags:
            data["tags"] = tags
        with open(path, "rb") as f:
            files = {"file": (path.name, f)}
            return self._request("POST", "/upload", data=data, files=files).json()

    def list_files(self, offset: int = 0, limit: int = 50) -> Dict[str, Any]:
        return self._request("GET", "/api/files", params={"offset": offset, "limit": limit}).json()

    def search(self, query: str = "", tag: str = "", sort: str = "") -> List[Dict[str, Any]]:
        params = {k: v for k, v in (("q", query), ("tag", tag), ("sort", sort)) if v}
        return self._request("GET", "/search", params=params).json()

    def stats(self) -> Dict[str, Any]:
        return self._request("GET", "/stats").json()

    def info(self, file_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/info/{file_id}").json()

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/api/health").json()

    def delete(self, file_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/delete/{file_id}").json()

    def bulk_delete(self, file_ids: List[str]) -> Dict[str, Any]:
        return self._request("POST", "/bulk-delete", json={"file_ids": file_ids}).json()

    def download(self, file_id: str, password: str = "", dest_dir: Path = Path(".")) -> Path:
        params = {"password": password} if password else None
        response = self._request("GET", f"/download/{file_id}", params=params,
                                 headers={"Accept": "*/*"})
        filename = filename_from_disposition(response.headers.get("content-disposition", ""))
        target = dest_dir / (filename or f"download_{file_id}")
        target.write_bytes(response.content)
        return target


def filename_from_disposition(header: str) -> Optional[str]:
    match = re.search(r'filename="((?:[^"\\]|\\.)*)"', header)
    if not match:
        return None
    # Never let the server pick a path outside the destination directory
    return Path(match.group(1).replace('\\"', '"')).name or None


def print_file(f: Dict[str, Any], index: Optional[int] = None):
    prefix = f"{index:2d}. " if index is not None else ""
    print(f"{prefix}{f['original_name']} ({format_size(f['size'])})")
    print(f"    ID: {f['id']}")
    downloads = f"{f['downloads']}"
    if f.get("max_downloads", 0) > 0:
        downloads += f"/{f['max_downloads']}"
    print(f"    Downloads: {downloads}")
    print(f"    Expires: {f['expires_at'][:19]}")
    if f.get("tags"):
        print(f"    Tags: {', '.join(f['tags'])}")
    if f.get("description"):
        print(f"    Description: {f['description']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="File share client")
    parser.add_argument("-s", "--server", default=os.getenv("UPLOAD_SERVER", DEFAULT_SERVER),
                        help="Server URL (default: $UPLOAD_SERVER or %(default)s)")
    commands = parser.add_subparsers(dest="command", required=True)

    upload = commands.add_parser("upload", help="Upload a file")
    upload.add_argument("file", type=Path)
    upload.add_argument("-t", "--ttl", type=int, default=int(os.getenv("UPLOAD_TTL", DEFAULT_TTL)),
                        help="Time to live in seconds")
    upload.add_argument("-p", "--password", default="", help="Protect file with password")
    upload.add_argument("-d", "--description", default="", help="File description")
    upload.add_argument("--tags", default="", help="Comma-separated tags")
    upload.add_argument("-m", "--max-downloads", type=int, default=None,
                        help="Maximum number of downloads (default: unlimited)")

    listing = commands.add_parser("list", help="List files on the server")
    listing.add_argument("--offset", type=int, default=0)
    listing.add_argument("--limit", type=int, default=50)

    search = commands.add_parser("search", help="Search files by name/description")
    search.add_argument("query", nargs="?", default="")
    search.add_argument("--tag", default="")
    search.add_argument("--sort", choices=("uploaded", "size", "downloads"), default="")

    commands.add_parser("stats", help="Show server statistics")
    commands.add_parser("health", help="Check server health")

    info = commands.add_parser("info", help="Show file information")
    info.add_argument("file_id")

    download = commands.add_parser("download", help="Download a file by id")
    download.add_argument("file_id")
    download.add_argument("-p", "--password", default="")
    download.add_argument("-o", "--output-dir", type=Path, default=Path("."))

    delete = commands.add_parser("delete", help="Delete a file by id")
    delete.add_argument("file_id")

    bulk = commands.add_parser("bulk-delete", help="Delete several files")
    bulk.add_argument("file_ids", nargs="+")
    return parser


def run(args: argparse.Namespace, client: FileShareClient):
    if args.command == "upload":
        if not args.file.is_file():
            raise ClientError(f"File not found: {args.file}")
        print(f"Uploading {args.file.name} ({format_size(args.file.stat().st_size)}), "
              f"TTL {format_duration(args.ttl)}")
        data = client.upload(args.file, args.ttl, args.max_downloads, args.password,
                             args.description, args.tags)
        print("Upload successful!")
        print(f"   ID: {data['id']}")
        print(f"   Size: {data['size']:,} bytes")
        print(f"   Checksum: {data['checksum']}")
        print(f"   Expires: {data['expires_at']}")
        if data.get("max_downloads", 0) > 0:
            print(f"   Max Downloads: {data['max_downloads']}")
        print(f"Download URL: {data['download_url']}")

    elif args.command == "list":
        data = client.list_files(args.offset, args.limit)
        if not data["files"]:
            print("No files found.")
            return
        print(f"Found {data['total']} files:")
        for i, f in enumerate(data["files"], data["offset"] + 1):
            print_file(f, i)

    elif args.command == "search":
        files = client.search(args.query, args.tag, args.sort)
        if not files:
            print("No files found matching the search criteria.")
            return
        print(f"Found {len(files)} matching files:")
        for i, f in enumerate(files, 1):
            print_file(f, i)

    elif args.command == "stats":
        data = client.stats()
        print("Server Statistics:")
        print(f"   Total Files: {data['total_files']}")
        print(f"   Active Files: {data['active_files']}")
        print(f"   Total Downloads: {data['total_downloads']}")
        print(f"   Total Size: {data['total_size']:,} bytes")

    elif args.command == "health":
        data = client.health()
        print("Server Health:")
        for key in ("status", "file_count", "uptime", "memory_mb", "timestamp"):
            print(f"   {key}: {data.get(key, 'unknown')}")

    elif args.command == "info":
        f = client.info(args.file_id)
        print_file(f)
        print(f"    Content Type: {f['content_type']}")
        print(f"    Uploaded: {f['upload_time'][:19]}")
        print(f"    Checksum: {f['checksum']}")
        print(f"    Uploader IP: {f['uploader_ip']}")
        if f.get("password_protected"):
            print("    Password Protected: Yes")

    elif args.command == "download":
        target = client.download(args.file_id, args.password, args.output_dir)
        print(f"File downloaded successfully: {target}")

    elif args.command == "delete":
        data = client.delete(args.file_id)
        print("File deleted" if data["status"] == "deleted" else "File was already gone")

    elif args.command == "bulk-delete":
        data = client.bulk_delete(args.file_ids)
        print(f"Deleted {data['deleted']} of {data['total']} files")


def main(argv: Optional[List[str]] = None, client: Optional[FileShareClient] = None) -> int:
    args = build_parser().parse_args(argv)
    client = client or FileShareClient(args.server)
    try:
        run(args, client)
    except ClientError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
