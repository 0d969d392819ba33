import uuid

from locust import HttpUser, task, between


class WriterUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        payload = {"email": f"load-{uuid.uuid4()}@presswork.dev", "password": "password"}
        r = self.client.post("/api/auth/register", json=payload)
        token = r.json().get("access_token")
        self.headers = {"Authorization": f"Bearer {token}"}
        r = self.client.post("/api/publications/", json={"name": "Load Gazette"}, headers=self.headers)
        self.publication_id = r.json()["data"]["id"]

    @task(3)
    def list_submissions(self):
        self.client.get("/api/workflow/my-submissions", headers=self.headers)

    @task(1)
    def submit_draft(self):
        r = self.client.post(
            "/api/articles/",
            json={"title": "bench draft", "content": "Body.\n\nMore body."},
            headers=self.headers,
        )
        article_id = r.json()["data"]["id"]
        self.client.post(
            "/api/workflow/submit-article",
            json={"article_id": article_id, "publication_id": self.publication_id},
            headers=self.headers,
        )
