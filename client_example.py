#!/usr/bin/env python3
import requests
import argparse
import mimetypes
import os
import time
from typing import Optional

TERMINAL_STATUSES = ("completed", "failed")


class GenerationClientError(Exception):
    pass


class GenerationFailedError(GenerationClientError):
    pass


class GenerationTimeoutError(GenerationClientError):
    pass


def _error_message(response, default: str) -> str:
    try:
        return response.json().get("error") or default
    except ValueError:
        return response.text or default


class GenerationClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None,
                 request_timeout: float = 30):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.request_timeout = request_timeout

    def start_generation(self, task_type: str, prompt: str) -> str:
        """提交文本生成任务，返回任务ID"""
        response = self.session.post(
            f'{self.base_url}/api/generate',
            json={'type': task_type, 'prompt': prompt},
            timeout=self.request_timeout,
        )

        if response.status_code != 200:
            raise GenerationClientError(f"提交失败: {_error_message(response, 'Failed to start generation')}")

        task_id = response.json().get('taskId')
        if not task_id:
            raise GenerationClientError("No task ID received")
        return task_id

    def get_task_status(self, task_id: str) -> dict:
        """获取任务状态"""
        response = self.session.get(
            f'{self.base_url}/api/generate',
            params={'taskId': task_id},
            timeout=self.request_timeout,
        )

        if response.status_code != 200:
            raise GenerationClientError(f"获取状态失败: {_error_message(response, 'Failed to fetch task status')}")

        return response.json()

    def start_video_generation(self, image_path: str, prompt: str) -> str:
        """上传图片并提交图生视频任务，返回任务ID"""
        content_type = mimetypes.guess_type(image_path)[0] or 'application/octet-stream'
        with open(image_path, 'rb') as f:
            response = self.session.post(
                f'{self.base_url}/api/generate-video',
                files={'image': (os.path.basename(image_path), f, content_type)},
                data={'prompt': prompt},
                timeout=self.request_timeout,
            )

        if response.status_code != 200:
            raise GenerationClientError(f"上传失败: {_error_message(response, 'Failed to start video generation')}")

        return response.json()['taskId']

    def get_video_status(self, task_id: str) -> dict:
        response = self.session.get(
            f'{self.base_url}/api/generate-video',
            params={'taskId': task_id},
            timeout=self.request_timeout,
        )

        if response.status_code != 200:
            raise GenerationClientError(f"获取状态失败: {_error_message(response, 'Failed to fetch task status')}")

        return response.json()

    def wait_for_completion(self, task_id: str, check_interval: float = 1, timeout: float = 300,
                            video: bool = False) -> dict:
        """
        按固定间隔顺序轮询任务状态，直到完成或失败。

        超时只会停止本地轮询，服务端的任务仍会继续执行。
        """
        fetch = self.get_video_status if video else self.get_task_status
        start_time = time.monotonic()

        while True:
            status = fetch(task_id)

            if status['status'] == 'completed':
                return status

            if status['status'] == 'failed':
                raise GenerationFailedError(status.get('error') or 'Generation failed')

            if time.monotonic() - start_time >= timeout:
                raise GenerationTimeoutError("Generation timed out")

            time.sleep(check_interval)

    def generate(self, task_type: str, prompt: str, check_interval: float = 1, timeout: float = 300) -> str:
        """提交任务并等待结果，返回结果URL"""
        task_id = self.start_generation(task_type, prompt)
        status = self.wait_for_completion(task_id, check_interval, timeout)
        return status['result']

    def generate_video(self, image_path: str, prompt: str, check_interval: float = 1,
                       timeout: float = 300) -> str:
        task_id = self.start_video_generation(image_path, prompt)
        status = self.wait_for_completion(task_id, check_interval, timeout, video=True)
        return status['videoUrl']


def main():
    parser = argparse.ArgumentParser(description="Runway 生成客户端")
    parser.add_argument("prompt", help="提示词")
    parser.add_argument("--type", choices=["image", "video"], default="video", help="生成类型")
    parser.add_argument("--image", help="图生视频使用的图片路径")
    parser.add_argument("--server", default="http://localhost:8000", help="API服务器地址")
    parser.add_argument("--interval", "-i", type=float, default=1, help="状态检查间隔（秒）")
    parser.add_argument("--timeout", "-t", type=float, default=300, help="超时时间（秒）")

    args = parser.parse_args()

    client = GenerationClient(args.server)

    try:
        if args.image:
            print(f"上传图片: {args.image}")
            task_id = client.start_video_generation(args.image, args.prompt)
        else:
            task_id = client.start_generation(args.type, args.prompt)
        print(f"任务ID: {task_id}")

        print("等待任务完成...")
        status = client.wait_for_completion(task_id, args.interval, args.timeout, video=bool(args.image))
        print(f"生成完成: {status.get('videoUrl') or status.get('result')}")

    except GenerationClientError as e:
        print(f"错误: {str(e)}")
        return 1
    except requests.RequestException as e:
        print(f"请求失败: {str(e)}")
        return 1


if __name__ == "__main__":
    exit(main())
